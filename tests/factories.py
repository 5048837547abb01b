"""
Test data factories.

Uses factory pattern to generate consistent captação rows, both as
spreadsheet lines and as rows already stored in the table.
"""

from typing import Optional
from uuid import uuid4


class SourceRowFactory:
    """
    Factory for spreadsheet data lines, in the column order of
    conftest.EXAMPLE_HEADERS.

    Usage:
        row = SourceRowFactory.create()
        row = SourceRowFactory.create(valor="abc")
        rows = SourceRowFactory.create_batch(5)
    """

    _counter = 0

    @classmethod
    def _next_counter(cls) -> int:
        cls._counter += 1
        return cls._counter

    @classmethod
    def create(
        cls,
        data_captacao: object = "15/03/2024",
        cod_assessor: object = "A001",
        cod_cliente: Optional[object] = None,
        tipo: object = "APORTE",
        aux: object = "X",
        valor: object = "1000.50",
        data_atualizacao: object = "16/03/2024",
        tipo_pessoa: object = "PF",
    ) -> list:
        """
        Create one data line.

        cod_cliente is unique per call unless given, so rows built in a
        batch never collide on the natural key.
        """
        counter = cls._next_counter()
        return [
            data_captacao,
            cod_assessor,
            cod_cliente if cod_cliente is not None else f"C{counter:04d}",
            tipo,
            aux,
            valor,
            data_atualizacao,
            tipo_pessoa,
        ]

    @classmethod
    def create_batch(cls, count: int, **overrides) -> list:
        return [cls.create(**overrides) for _ in range(count)]


class StoredCaptacaoFactory:
    """
    Factory for rows as they sit in the destination table.

    Usage:
        row = StoredCaptacaoFactory.create(cod_cliente="C500")
    """

    _counter = 0

    @classmethod
    def _next_counter(cls) -> int:
        cls._counter += 1
        return cls._counter

    @classmethod
    def create(
        cls,
        data_captacao: str = "2024-03-15",
        cod_assessor: str = "A001",
        cod_cliente: Optional[str] = None,
        tipo_captacao: str = "APORTE",
        aux: str = "X",
        valor_captacao: float = 1000.5,
        data_atualizacao: str = "2024-03-16",
        tipo_pessoa: str = "PF",
    ) -> dict:
        counter = cls._next_counter()
        return {
            "id": str(uuid4()),
            "data_captacao": data_captacao,
            "cod_assessor": cod_assessor,
            "cod_cliente": cod_cliente or f"S{counter:04d}",
            "tipo_captacao": tipo_captacao,
            "aux": aux,
            "valor_captacao": valor_captacao,
            "data_atualizacao": data_atualizacao,
            "tipo_pessoa": tipo_pessoa,
        }

    @classmethod
    def create_batch(cls, count: int, **overrides) -> list:
        return [cls.create(**overrides) for _ in range(count)]
