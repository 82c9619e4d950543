import hashlib
import logging
import time
import uuid
from typing import Optional

from .contracts import PatientAlias
from .store import KeyValueStore

logger = logging.getLogger(__name__)

ALIAS_MAP_KEY = "patient_alias_map"

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _base36(number: int) -> str:
    digits = ""
    while True:
        number, rem = divmod(number, 36)
        digits = _BASE36[rem] + digits
        if number == 0:
            return digits


def generate_alias() -> str:
    timestamp_part = _base36(int(time.time() * 1000))
    random_part = uuid.uuid4().hex[:8].upper()
    return f"PT-{timestamp_part}-{random_part}"


def context_key(context: str) -> str:
    return hashlib.sha256(context.encode("utf-8")).hexdigest()


class AliasService:
    """Maps patient context strings (name, DOB) to stable pseudonyms.

    The mapping lives only in the local store and is never sent to the
    AI provider.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    def lookup(self, context: str) -> Optional[PatientAlias]:
        entry = (self.store.get(ALIAS_MAP_KEY) or {}).get(context_key(context))
        if not entry:
            return None
        return PatientAlias.model_validate(entry)

    def get_or_create(self, context: str) -> PatientAlias:
        if not context or not context.strip():
            raise ValueError("Missing patient context")

        alias_map = dict(self.store.get(ALIAS_MAP_KEY) or {})
        key = context_key(context)
        if key in alias_map:
            return PatientAlias.model_validate(alias_map[key])

        alias = PatientAlias(alias=generate_alias())
        alias_map[key] = alias.model_dump(mode="json")
        self.store.set(ALIAS_MAP_KEY, alias_map)
        logger.info(f"Created patient alias {alias.alias}")
        return alias
