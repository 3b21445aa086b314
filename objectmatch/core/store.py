import structlog
from typing import Dict, Iterator, Mapping, Optional, Tuple, Union

from objectmatch.models.fingerprint import AuxiliarySignatures, Fingerprint

logger = structlog.get_logger()

FingerprintLike = Union[Fingerprint, str]

class StoreEntry:
    """A stored primary fingerprint with its record id and optional signatures."""

    __slots__ = ("fingerprint", "record_id", "signatures")

    def __init__(self, fingerprint: Fingerprint, record_id: str,
                 signatures: Optional[AuxiliarySignatures] = None):
        self.fingerprint = fingerprint
        self.record_id = record_id
        self.signatures = signatures

    def __repr__(self) -> str:
        return f"StoreEntry({self.fingerprint.value[:16]}..., {self.record_id!r})"

class FingerprintStore:
    """
    Caller-owned mapping of primary fingerprint -> record id.

    Iteration follows insertion order. The store does no locking; callers
    that mutate it concurrently should hand a ``snapshot()`` to each matching
    call.
    """

    def __init__(self, entries: Optional[Mapping[FingerprintLike, str]] = None):
        self._entries: Dict[str, StoreEntry] = {}
        if entries:
            for fingerprint, record_id in entries.items():
                self.add(fingerprint, record_id)

    @classmethod
    def from_mapping(cls, mapping: Union["FingerprintStore", Mapping[FingerprintLike, str]]) -> "FingerprintStore":
        """Wrap a plain mapping; stores are returned unchanged."""
        if isinstance(mapping, FingerprintStore):
            return mapping
        return cls(mapping)

    @staticmethod
    def _coerce(fingerprint: FingerprintLike) -> Fingerprint:
        if isinstance(fingerprint, Fingerprint):
            return fingerprint
        return Fingerprint.from_value(fingerprint)

    def add(self, fingerprint: FingerprintLike, record_id: str,
            signatures: Optional[AuxiliarySignatures] = None) -> StoreEntry:
        """Add or replace the record for a primary fingerprint."""
        fp = self._coerce(fingerprint)
        if fp.value in self._entries:
            logger.warning("Replacing record for existing fingerprint",
                           fingerprint=fp.value[:16],
                           previous_record=self._entries[fp.value].record_id,
                           record_id=record_id)
            # keep the original position in iteration order
            entry = self._entries[fp.value]
            entry.fingerprint = fp
            entry.record_id = record_id
            entry.signatures = signatures
            return entry

        entry = StoreEntry(fp, record_id, signatures)
        self._entries[fp.value] = entry
        logger.debug("Fingerprint added to store", fingerprint=fp.value[:16], record_id=record_id)
        return entry

    def remove(self, fingerprint: FingerprintLike) -> Optional[str]:
        entry = self._entries.pop(self._coerce(fingerprint).value, None)
        return entry.record_id if entry else None

    def get(self, fingerprint: FingerprintLike) -> Optional[str]:
        entry = self._entries.get(self._coerce(fingerprint).value)
        return entry.record_id if entry else None

    def signatures_for(self, fingerprint: FingerprintLike) -> Optional[AuxiliarySignatures]:
        entry = self._entries.get(self._coerce(fingerprint).value)
        return entry.signatures if entry else None

    def entries(self) -> Iterator[StoreEntry]:
        return iter(list(self._entries.values()))

    def items(self) -> Iterator[Tuple[Fingerprint, str]]:
        for entry in self.entries():
            yield entry.fingerprint, entry.record_id

    def has_auxiliary_signatures(self) -> bool:
        return any(e.signatures is not None and not e.signatures.is_empty for e in self._entries.values())

    def snapshot(self) -> "FingerprintStore":
        """Shallow copy safe to scan while the original keeps changing."""
        copy = FingerprintStore()
        for entry in self._entries.values():
            copy._entries[entry.fingerprint.value] = StoreEntry(entry.fingerprint, entry.record_id, entry.signatures)
        return copy

    def __contains__(self, fingerprint) -> bool:
        try:
            return self._coerce(fingerprint).value in self._entries
        except ValueError:
            return False

    def __iter__(self) -> Iterator[Fingerprint]:
        return (entry.fingerprint for entry in self.entries())

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)
