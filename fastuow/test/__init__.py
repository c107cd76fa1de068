from .unit import Call, FakeBackend  # noqa
