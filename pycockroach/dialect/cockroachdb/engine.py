from typing import Optional

from pycockroach.base import GeneratorOptions, UpsertPath
from pycockroach.connection import ConnectionParameters

from .connection import CockroachConnection, CockroachOptions
from .generator import CockroachGenerator
from .legacy import ExceptionWrapper, LegacyGenerator


class CockroachEngine:
    "Creates statement generators and connections for CockroachDB."

    @property
    def name(self) -> str:
        return "cockroachdb"

    def create_generator(
        self, options: Optional[GeneratorOptions] = None
    ) -> CockroachGenerator:
        "Instantiates the generator that implements the upsert path selected in the options."

        if options is None:
            options = GeneratorOptions()

        if options.upsert_path is UpsertPath.LEGACY:
            return LegacyGenerator(options)
        else:
            return CockroachGenerator(options, ExceptionWrapper())

    def create_connection(
        self,
        params: ConnectionParameters,
        options: Optional[CockroachOptions] = None,
    ) -> CockroachConnection:
        if options is None:
            options = CockroachOptions()
        return CockroachConnection(
            self.create_generator(options.generator), params, options
        )
