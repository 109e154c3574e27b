import abc
import logging
import os
import os.path

from pycockroach.base import GeneratorOptions, UpsertPath
from pycockroach.connection import ConnectionParameters, ConnectionSSLMode
from pycockroach.dialect.cockroachdb.engine import CockroachEngine


class TestEngineBase(abc.ABC):
    @property
    @abc.abstractmethod
    def engine(self) -> CockroachEngine: ...

    @property
    @abc.abstractmethod
    def parameters(self) -> ConnectionParameters: ...


class CockroachBase(TestEngineBase):
    "Base class for testing CockroachDB features."

    @property
    def engine(self) -> CockroachEngine:
        return CockroachEngine()

    @property
    def parameters(self) -> ConnectionParameters:
        return ConnectionParameters(
            host=os.getenv("COCKROACHDB_HOST", "localhost"),
            port=26257,
            username="root",
            password=None,
            database="defaultdb",
            ssl=ConnectionSSLMode.disable,
        )

    @property
    def options(self) -> GeneratorOptions:
        return GeneratorOptions(upsert_path=UpsertPath.BINDING)


def has_env_var(name: str) -> bool:
    """
    True if tests are to be executed. To be used with `@unittest.skipUnless`.

    :param name: Environment variable to check.
    """

    return os.environ.get(f"TEST_{name}", "0") == "1"


def configure() -> None:
    """
    Configures logging in unit and integration tests. To be invoked in module `__main__`.
    """

    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)

    ch = logging.FileHandler(os.path.join(os.path.dirname(__file__), "test.log"), "w")
    ch.setLevel(logging.DEBUG)
    logger.addHandler(ch)

    os.environ["TEST_INTEGRATION"] = "1"
    os.environ["TEST_COCKROACHDB"] = "1"
