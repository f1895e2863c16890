# storage.py — v1.0.1 (02/10/2025)
# Bucket de objetos em disco para os documentos dos contratos.
# Chaves no formato "{contract_id}/{timestamp}.{ext}" viram caminhos
# relativos a APP_STORAGE_DIR/<bucket>.

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, List

BUCKET_DOCUMENTOS = "contract-documents"

RUNTIME_DIR = os.getenv("RUNTIME_DIR", os.path.join(os.getcwd(), "runtime"))
STORAGE_DIR = os.getenv("APP_STORAGE_DIR", os.path.join(RUNTIME_DIR, "storage"))


class StorageError(Exception):
    pass


class Bucket:
    def __init__(self, name: str, root: str | os.PathLike | None = None):
        self.name = name
        self.root = (Path(root or STORAGE_DIR) / name).resolve()

    def _resolve(self, key: str) -> Path:
        key = (key or "").strip().lstrip("/")
        if not key:
            raise StorageError("chave vazia")
        p = (self.root / key).resolve()
        if self.root not in p.parents:
            raise StorageError(f"chave fora do bucket: {key!r}")
        return p

    def upload(self, key: str, data: bytes) -> str:
        p = self._resolve(key)
        if p.exists():
            raise StorageError(f"objeto já existe: {key}")
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(data)
        return key

    def remove(self, keys: Iterable[str]) -> List[str]:
        """Remove as chaves existentes; devolve as que foram de fato removidas."""
        removed = []
        for key in keys:
            p = self._resolve(key)
            if p.is_file():
                p.unlink()
                removed.append(key)
        return removed

    def exists(self, key: str) -> bool:
        return self._resolve(key).is_file()

    def path_of(self, key: str) -> Path:
        p = self._resolve(key)
        if not p.is_file():
            raise StorageError(f"objeto não encontrado: {key}")
        return p


def get_bucket() -> Bucket:
    """Dependência FastAPI: bucket de documentos."""
    return Bucket(BUCKET_DOCUMENTOS)
