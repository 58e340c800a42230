import copy
import threading
from typing import Dict, List, Optional

from verianchor.errors import ClaimNotFound, RecordNotFound
from verianchor.models.claim import Claim, MedicalRecord


class ClaimRepository:
    """
    Persistence boundary for claims and the medical records they point at.

    This in-process implementation hands out copies, so a caller's
    unsaved changes are never visible to other requests until save().
    """

    def __init__(self):
        self._claims: Dict[str, Claim] = {}
        self._records: Dict[str, MedicalRecord] = {}
        self._lock = threading.Lock()

    # --- records ---

    def add_record(self, record: MedicalRecord) -> MedicalRecord:
        with self._lock:
            self._records[record.record_id] = record
        return record

    def get_record(self, record_id: str) -> MedicalRecord:
        with self._lock:
            record = self._records.get(record_id)
        if record is None:
            raise RecordNotFound(f"Medical record {record_id} not found")
        return record

    # --- claims ---

    def get(self, claim_id: str) -> Claim:
        with self._lock:
            claim = self._claims.get(claim_id)
            if claim is None:
                raise ClaimNotFound(f"Claim {claim_id} not found")
            return copy.deepcopy(claim)

    def find(self, claim_id: str) -> Optional[Claim]:
        try:
            return self.get(claim_id)
        except ClaimNotFound:
            return None

    def save(self, claim: Claim) -> None:
        with self._lock:
            self._claims[claim.claim_id] = copy.deepcopy(claim)

    def list(self, claimant_id: Optional[str] = None, insurer_id: Optional[str] = None) -> List[Claim]:
        with self._lock:
            claims = [copy.deepcopy(c) for c in self._claims.values()]
        if claimant_id:
            claims = [c for c in claims if c.claimant_id == claimant_id]
        if insurer_id:
            claims = [c for c in claims if c.insurer_id == insurer_id]
        return claims

    def delete(self, claim_id: str) -> None:
        with self._lock:
            self._claims.pop(claim_id, None)
