import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from verianchor.audit.aggregate import build_audit_timeline
from verianchor.audit.reconciler import AuthenticityReconciler
from verianchor.claims.outbox import AnchorOutbox
from verianchor.claims.repository import ClaimRepository
from verianchor.claims.workflow import ClaimWorkflow
from verianchor.config import AnchorConfig
from verianchor.content.gateway import ContentGateway
from verianchor.content.store import InMemoryContentStore, PinataContentStore
from verianchor.errors import (
    AccessDenied,
    AnchorError,
    ClaimNotFound,
    InvalidTransition,
    RecordNotFound,
    RecordValidationFailed,
)
from verianchor.labs.anchoring import InMemoryTimeline, LabResultAnchoring, LabResultStore
from verianchor.ledger.codec import decode_log_message
from verianchor.ledger.in_process import InProcessLog
from verianchor.ledger.reader import MirrorLogReader
from verianchor.ledger.writer import AnchorWriter, HttpLogSubmitter
from verianchor.models.lab_result import LabActor
from verianchor.records.anchoring import RecordAnchoring
from verianchor.telemetry import emit_exception_telemetry, init_telemetry

# --- 1. AUDIT LOGGING ---
logging.basicConfig(
    filename="audit.log",
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
audit_logger = logging.getLogger("audit")

OFFLINE_TOPIC_ID = "0.0.0"

tags_metadata = [
    {
        "name": "Verification",
        "description": "Authenticity checks: anchored hash (log) vs. recomputed hash (content store).",
    },
    {
        "name": "Claims",
        "description": "Claim workflow. Every transition is anchored to the audit topic.",
    },
    {
        "name": "Labs",
        "description": "Lab result anchoring.",
    },
    {
        "name": "System",
        "description": "Health checks and operational metadata.",
    },
]


# --- SERVICES ---

@dataclass
class Services:
    config: AnchorConfig
    log_reader: Any
    content_fetcher: Any
    writer: AnchorWriter
    reconciler: AuthenticityReconciler
    claims: ClaimRepository
    workflow: ClaimWorkflow
    records: RecordAnchoring
    lab_results: LabResultStore
    labs: LabResultAnchoring


def build_services(config: Optional[AnchorConfig] = None) -> Services:
    """
    Wire the stack from configuration.

    Without LOG_SUBMIT_URL the log is an in-process one (read and write);
    without PINATA_JWT content lives in memory. Both are for local runs.
    """
    config = config or AnchorConfig.from_env()

    if config.log_submit_url:
        submitter = HttpLogSubmitter(config)
        log_reader = MirrorLogReader(config)
    else:
        audit_logger.warning("LOG_SUBMIT_URL not set; using an in-process log")
        if not config.default_topic_id:
            config = config.with_topic(OFFLINE_TOPIC_ID)
        submitter = log_reader = InProcessLog(default_topic_id=config.default_topic_id)

    if config.pinata_jwt:
        content_store = PinataContentStore(config.pinata_jwt, timeout=config.http_timeout)
        content_fetcher = ContentGateway(config)
    else:
        audit_logger.warning("PINATA_JWT not set; using in-memory content storage")
        content_store = content_fetcher = InMemoryContentStore()

    writer = AnchorWriter(config, submitter)
    reconciler = AuthenticityReconciler(log_reader, content_fetcher, topic_id=config.default_topic_id)
    claims = ClaimRepository()
    lab_results = LabResultStore()

    return Services(
        config=config,
        log_reader=log_reader,
        content_fetcher=content_fetcher,
        writer=writer,
        reconciler=reconciler,
        claims=claims,
        records=RecordAnchoring(content_store, writer, claims),
        workflow=ClaimWorkflow(claims, writer, reconciler, AnchorOutbox()),
        lab_results=lab_results,
        labs=LabResultAnchoring(content_store, writer, lab_results, InMemoryTimeline()),
    )


# --- DATA MODELS ---

class RecordRequest(BaseModel):
    patientId: str
    type: str
    title: str = ""
    date: Optional[str] = None
    notes: Optional[str] = None
    addedBy: Optional[str] = None
    data: Dict[str, Any] = {}


class FileClaimRequest(BaseModel):
    claimantId: str
    insurerId: str
    recordId: str
    amountRequested: float = Field(gt=0)
    currency: Optional[str] = None
    description: Optional[str] = None
    attachments: List[str] = []
    claimantDID: Optional[str] = None
    insurerDID: Optional[str] = None


class ApproveClaimRequest(BaseModel):
    insurerId: str
    amountApproved: Optional[float] = None
    insurerDID: Optional[str] = None
    claimantDID: Optional[str] = None


class RejectClaimRequest(BaseModel):
    insurerId: str
    reason: Optional[str] = None
    insurerDID: Optional[str] = None
    claimantDID: Optional[str] = None


class PaidClaimRequest(BaseModel):
    payoutReference: Optional[str] = None


class LabResultRequest(BaseModel):
    patientId: str
    labId: str
    testType: str
    data: Dict[str, Any] = {}
    notes: Optional[str] = None
    dateCollected: Optional[str] = None
    patientDID: Optional[str] = None
    labDID: Optional[str] = None
    labName: str = "Lab"


def create_app(services: Optional[Services] = None) -> FastAPI:
    app = FastAPI(
        title="VeriAnchor Record Verification",
        description="""
        **Anchored-record verification** for healthcare claims and lab results.

        * **Anchor Writer:** canonical event messages on an ordered log topic.
        * **Reconciler:** log hash vs. freshly computed content hash, never the database copy.
        * **Audit timeline:** every anchored claim event decoded from the mirror node.
        """,
        version="1.0.0",
        openapi_tags=tags_metadata,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.services = services

    def get_services(request: Request) -> Services:
        if request.app.state.services is None:
            request.app.state.services = build_services()
        return request.app.state.services

    # --- MIDDLEWARE: AUDIT TRAIL ---
    @app.middleware("http")
    async def audit_middleware(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time

        client_host = request.client.host if request.client else "unknown"
        audit_logger.info(
            f"METHOD={request.method} PATH={request.url.path} "
            f"STATUS={response.status_code} CLIENT={client_host} "
            f"DURATION={process_time:.4f}s"
        )
        return response

    # --- ERROR MAPPING ---
    @app.exception_handler(AnchorError)
    async def anchor_error_handler(request: Request, exc: AnchorError):
        if isinstance(exc, (ClaimNotFound, RecordNotFound)):
            return JSONResponse(status_code=404, content={"error": str(exc)})
        if isinstance(exc, AccessDenied):
            return JSONResponse(status_code=403, content={"error": str(exc)})
        if isinstance(exc, RecordValidationFailed):
            return JSONResponse(
                status_code=400,
                content={"error": str(exc), "validation": exc.verdict.to_dict()},
            )
        if isinstance(exc, InvalidTransition):
            return JSONResponse(status_code=400, content={"error": str(exc)})

        # Infrastructure: log / content store unreachable
        audit_logger.error(f"ENGINE_ERROR: {type(exc).__name__}: {exc}")
        emit_exception_telemetry(exc)
        return JSONResponse(status_code=500, content={"error": str(exc)})

    # --- ENDPOINTS: SYSTEM ---

    @app.get("/health", tags=["System"])
    def health():
        return {
            "status": "online",
            "modules": ["AnchorWriter", "LogReader", "PayloadCodec", "Reconciler", "AuditLog"]
        }

    # --- ENDPOINTS: RECORDS ---

    @app.post("/records", status_code=201, tags=["Verification"])
    def create_record(body: RecordRequest, svc: Services = Depends(get_services)):
        try:
            record = svc.records.create_record(
                patient_id=body.patientId,
                record_type=body.type,
                title=body.title,
                data=body.data,
                notes=body.notes,
                added_by=body.addedBy,
                date=body.date,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        return {
            "message": "Health record created and anchored.",
            "recordId": record.record_id,
            "hcsMessageId": record.anchor_reference,
            "ipfsCid": record.content_id,
        }

    @app.get("/records/{record_id}/validate", tags=["Verification"])
    def validate_record(record_id: str, svc: Services = Depends(get_services)):
        record = svc.claims.get_record(record_id)
        verdict = svc.reconciler.verify(record)
        return {"recordId": record_id, "validation": verdict.to_dict()}

    # --- ENDPOINTS: CLAIMS ---

    @app.post("/claims", status_code=201, tags=["Claims"])
    def file_claim(body: FileClaimRequest, svc: Services = Depends(get_services)):
        claim = svc.workflow.file_claim(
            claimant_id=body.claimantId,
            insurer_id=body.insurerId,
            record_id=body.recordId,
            amount_requested=body.amountRequested,
            currency=body.currency,
            description=body.description,
            attachments=body.attachments,
            claimant_did=body.claimantDID,
            insurer_did=body.insurerDID,
        )
        return {
            "message": "Claim filed",
            "claimId": claim.claim_id,
            "hcsMessageId": claim.history[-1].anchor_reference,
        }

    @app.get("/claims/{claim_id}", tags=["Claims"])
    def get_claim(claim_id: str, svc: Services = Depends(get_services)):
        return {"claim": svc.claims.get(claim_id).to_dict()}

    @app.post("/claims/{claim_id}/approve", tags=["Claims"])
    def approve_claim(claim_id: str, body: ApproveClaimRequest, svc: Services = Depends(get_services)):
        claim = svc.workflow.approve_claim(
            claim_id,
            insurer_id=body.insurerId,
            amount_approved=body.amountApproved,
            insurer_did=body.insurerDID,
            claimant_did=body.claimantDID,
        )
        return {
            "message": "Claim approved",
            "claimId": claim.claim_id,
            "amountApproved": claim.amount_approved,
            "hcsMessageId": claim.history[-1].anchor_reference,
        }

    @app.post("/claims/{claim_id}/reject", tags=["Claims"])
    def reject_claim(claim_id: str, body: RejectClaimRequest, svc: Services = Depends(get_services)):
        claim = svc.workflow.reject_claim(
            claim_id,
            insurer_id=body.insurerId,
            reason=body.reason,
            insurer_did=body.insurerDID,
            claimant_did=body.claimantDID,
        )
        return {
            "message": "Claim rejected",
            "claimId": claim.claim_id,
            "rejectionHcsMessageId": claim.history[-1].anchor_reference,
        }

    @app.post("/claims/{claim_id}/paid", tags=["Claims"])
    def mark_claim_paid(claim_id: str, body: PaidClaimRequest, svc: Services = Depends(get_services)):
        claim = svc.workflow.mark_paid(claim_id, payout_reference=body.payoutReference)
        return {
            "message": "Claim paid",
            "claimId": claim.claim_id,
            "hcsMessageId": claim.history[-1].anchor_reference,
        }

    @app.get("/claims/{claim_id}/audit", tags=["Claims"])
    def get_claim_audit(claim_id: str, svc: Services = Depends(get_services)):
        return {"hcsEvents": svc.claims.get(claim_id).to_dict()["hcsEvents"]}

    @app.get("/claims/{claim_id}/validate", tags=["Verification"])
    def validate_claim_record(claim_id: str, svc: Services = Depends(get_services)):
        """
        200 with the verdict even when success is false: the check ran.
        Only an unreachable log or content store is a 500.
        """
        verdict = svc.workflow.validate_claim_record(claim_id)
        return {"claimId": claim_id, "validation": verdict.to_dict()}

    @app.get("/claims/{claim_id}/audit-aggregate", tags=["Verification"])
    def audit_aggregate(claim_id: str, svc: Services = Depends(get_services)):
        claim = svc.claims.get(claim_id)
        timeline = build_audit_timeline(
            svc.log_reader,
            claim.history,
            topic_id=svc.config.default_topic_id,
        )
        return {"claimId": claim_id, "timeline": timeline}

    # --- ENDPOINTS: EXPLORER ---

    @app.get("/topics/{topic_id}/messages", tags=["Verification"])
    def list_topic_messages(
        topic_id: str,
        limit: int = 25,
        order: str = "asc",
        svc: Services = Depends(get_services),
    ):
        try:
            entries = svc.log_reader.fetch_topic_messages(topic_id, limit=limit, order=order)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        return {
            "topicId": topic_id,
            "messages": [
                {
                    "sequenceNumber": e.sequence_number,
                    "consensusTimestamp": e.consensus_timestamp,
                    "decoded": decode_log_message(e),
                }
                for e in entries
            ],
        }

    # --- ENDPOINTS: LABS ---

    @app.post("/labs/results", status_code=201, tags=["Labs"])
    def create_lab_result(body: LabResultRequest, svc: Services = Depends(get_services)):
        try:
            result = svc.labs.create_lab_result(
                patient_id=body.patientId,
                lab=LabActor(lab_id=body.labId, did=body.labDID, name=body.labName),
                test_type=body.testType,
                data=body.data,
                notes=body.notes,
                date_collected=body.dateCollected,
                patient_did=body.patientDID,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        return {
            "message": "Lab result recorded and anchored.",
            "labResultId": result.lab_result_id,
            "hcsMessageId": result.anchor_reference,
            "cid": result.content_id,
        }

    @app.get("/labs/results/{lab_result_id}/validate", tags=["Verification"])
    def validate_lab_result(lab_result_id: str, svc: Services = Depends(get_services)):
        result = svc.lab_results.get(lab_result_id)
        verdict = svc.reconciler.verify(result)
        return {"labResultId": lab_result_id, "validation": verdict.to_dict()}

    return app


# --- INITIALIZE TELEMETRY AT STARTUP ---
init_telemetry()

app = create_app()
