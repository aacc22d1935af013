"""SQLAlchemy-backed case store.

Works with any SQLAlchemy URL; SQLite is the default and ``sqlite://`` gives
a shared in-memory database suitable for tests.
"""

import json
import uuid
from contextlib import contextmanager
from dataclasses import fields, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

import structlog
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    create_engine,
    func,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from accessgap.core.exceptions import CaseNotFoundError, FindingNotFoundError, StoreError
from accessgap.core.models import (
    Artifact,
    ArtifactKind,
    ArtifactStatus,
    AuditEntry,
    Case,
    CaseStatus,
    EngineSettings,
    EventType,
    Finding,
    FindingKind,
    RiskTier,
    Severity,
    utcnow,
)
from accessgap.storage.base import CaseStore

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    pass


class CaseRow(Base):
    __tablename__ = "cases"

    id = Column(String(32), primary_key=True)
    subject_email = Column(String(255), nullable=False, index=True)
    subject_id = Column(String(255), default="")
    subject_name = Column(String(255), default="")
    event_type = Column(String(32), nullable=False, default=EventType.OFFBOARD.value)
    effective_date = Column(DateTime(timezone=True))
    status = Column(String(32), nullable=False, default=CaseStatus.DRAFT.value, index=True)
    scheduled_remediation_date = Column(DateTime(timezone=True))
    notify_1w_sent = Column(Boolean, default=False)
    notify_1d_sent = Column(Boolean, default=False)
    notes = Column(Text, default="")
    created_at = Column(DateTime(timezone=True), nullable=False)
    modified_at = Column(DateTime(timezone=True))


class FindingRow(Base):
    __tablename__ = "findings"

    id = Column(String(32), primary_key=True)
    case_id = Column(String(32), nullable=False, index=True)
    kind = Column(String(64), nullable=False, index=True)
    severity = Column(String(16), nullable=False)
    summary = Column(Text, nullable=False)
    recommended_action = Column(Text, default="")
    closed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), nullable=False)


class ArtifactRow(Base):
    __tablename__ = "artifacts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    case_id = Column(String(32), nullable=False, index=True)
    name = Column(String(255), default="")
    kind = Column(String(32), nullable=False)
    subject_email = Column(String(255), nullable=False, index=True)
    app_display_name = Column(String(255), default="")
    client_id = Column(String(255), default="", index=True)
    status = Column(String(16), nullable=False)
    risk = Column(String(16), nullable=False)
    scopes = Column(JSON)
    metadata_json = Column(JSON)
    created_at = Column(DateTime(timezone=True), nullable=False)


class AuditRow(Base):
    __tablename__ = "audit_log"

    id = Column(String(32), primary_key=True)
    actor = Column(String(255), nullable=False)
    action_type = Column(String(64), nullable=False, index=True)
    target_email = Column(String(255), nullable=False, index=True)
    result = Column(String(32), nullable=False)
    remediation_type = Column(String(64))
    request = Column(JSON)
    response = Column(JSON)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)


class SettingsRow(Base):
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True)
    data = Column(JSON, nullable=False)


_CASE_FIELDS = {f.name for f in fields(Case)} - {"id", "created_at"}


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12].upper()}"


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo; everything is stored as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _jsonable(value: Any) -> Any:
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


class SQLCaseStore(CaseStore):
    """Case store on SQLAlchemy.

    Each operation runs in its own session and commits before returning.

    Example:
        >>> store = SQLCaseStore("sqlite:///accessgap.db")
        >>> case = store.create_case(Case(subject_email="alice@example.com"))
        >>> store.find_case_by_email("alice@example.com").id == case.id
        True
    """

    def __init__(self, database_url: str = "sqlite://", initial_settings: Optional[Dict[str, Any]] = None):
        """Initialize database connection.

        Args:
            database_url: SQLAlchemy connection URL
            initial_settings: Settings seeded on first use
        """
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            self.engine = create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(database_url)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine, expire_on_commit=False)
        self._initial_settings = initial_settings or {}
        self.ensure_tables()

        logger.info("case_store_initialized", dialect=self.engine.dialect.name)

    def ensure_tables(self) -> None:
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to create tables: {e}")

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("store_operation_failed", error=str(e))
            raise StoreError(f"Store operation failed: {e}")
        finally:
            session.close()

    # Cases

    @staticmethod
    def _to_case(row: CaseRow) -> Case:
        return Case(
            id=row.id,
            subject_email=row.subject_email,
            subject_id=row.subject_id or "",
            subject_name=row.subject_name or "",
            event_type=EventType(row.event_type),
            effective_date=_aware(row.effective_date),
            status=CaseStatus(row.status),
            scheduled_remediation_date=_aware(row.scheduled_remediation_date),
            notify_1w_sent=bool(row.notify_1w_sent),
            notify_1d_sent=bool(row.notify_1d_sent),
            notes=row.notes or "",
            created_at=_aware(row.created_at),
            modified_at=_aware(row.modified_at),
        )

    def list_cases(self, status: Optional[CaseStatus] = None, email: Optional[str] = None) -> List[Case]:
        with self._session() as session:
            query = session.query(CaseRow)
            if status is not None:
                query = query.filter(CaseRow.status == _enum_value(status))
            if email:
                query = query.filter(func.lower(CaseRow.subject_email) == email.lower())
            return [self._to_case(r) for r in query.order_by(CaseRow.created_at.desc()).all()]

    def get_case(self, case_id: str) -> Optional[Case]:
        with self._session() as session:
            row = session.get(CaseRow, case_id)
            return self._to_case(row) if row else None

    def create_case(self, case: Case) -> Case:
        now = utcnow()
        with self._session() as session:
            row = CaseRow(
                id=case.id or _new_id("OBC"),
                subject_email=case.subject_email.lower(),
                subject_id=case.subject_id,
                subject_name=case.subject_name,
                event_type=_enum_value(case.event_type),
                effective_date=case.effective_date,
                status=_enum_value(case.status),
                scheduled_remediation_date=case.scheduled_remediation_date,
                notify_1w_sent=case.notify_1w_sent,
                notify_1d_sent=case.notify_1d_sent,
                notes=case.notes,
                created_at=case.created_at or now,
                modified_at=now,
            )
            session.add(row)
            session.flush()
            created = self._to_case(row)

        logger.info("case_created", case_id=created.id, email=created.subject_email)
        return created

    def update_case(self, case_id: str, **patch) -> Case:
        unknown = set(patch) - _CASE_FIELDS
        if unknown:
            raise ValueError(f"Unknown case fields: {', '.join(sorted(unknown))}")

        with self._session() as session:
            row = session.get(CaseRow, case_id)
            if row is None:
                raise CaseNotFoundError(case_id)
            for key, value in patch.items():
                setattr(row, key, _enum_value(value))
            row.modified_at = utcnow()
            session.flush()
            return self._to_case(row)

    def find_case_by_email(self, email: str) -> Optional[Case]:
        with self._session() as session:
            row = (
                session.query(CaseRow)
                .filter(func.lower(CaseRow.subject_email) == email.lower())
                .filter(CaseRow.status != CaseStatus.CLOSED.value)
                .order_by(CaseRow.created_at.desc())
                .first()
            )
            return self._to_case(row) if row else None

    # Findings

    @staticmethod
    def _to_finding(row: FindingRow) -> Finding:
        return Finding(
            id=row.id,
            case_id=row.case_id,
            kind=FindingKind(row.kind),
            severity=Severity(row.severity),
            summary=row.summary,
            recommended_action=row.recommended_action or "",
            closed_at=_aware(row.closed_at),
            created_at=_aware(row.created_at),
        )

    def list_findings(
        self,
        case_id: Optional[str] = None,
        open_only: bool = False,
        kind: Optional[FindingKind] = None,
    ) -> List[Finding]:
        with self._session() as session:
            query = session.query(FindingRow)
            if case_id:
                query = query.filter(FindingRow.case_id == case_id)
            if open_only:
                query = query.filter(FindingRow.closed_at.is_(None))
            if kind is not None:
                query = query.filter(FindingRow.kind == _enum_value(kind))
            return [self._to_finding(r) for r in query.order_by(FindingRow.created_at.asc()).all()]

    def get_finding(self, finding_id: str) -> Optional[Finding]:
        with self._session() as session:
            row = session.get(FindingRow, finding_id)
            return self._to_finding(row) if row else None

    def create_finding(self, finding: Finding) -> Finding:
        if not finding.case_id:
            raise ValueError("A finding must belong to a case")
        if self.get_case(finding.case_id) is None:
            raise CaseNotFoundError(finding.case_id)

        with self._session() as session:
            row = FindingRow(
                id=finding.id or _new_id("FND"),
                case_id=finding.case_id,
                kind=_enum_value(finding.kind),
                severity=_enum_value(finding.severity),
                summary=finding.summary,
                recommended_action=finding.recommended_action,
                closed_at=finding.closed_at,
                created_at=finding.created_at or utcnow(),
            )
            session.add(row)
            session.flush()
            return self._to_finding(row)

    def close_finding(self, finding_id: str) -> Finding:
        with self._session() as session:
            row = session.get(FindingRow, finding_id)
            if row is None:
                raise FindingNotFoundError(finding_id)
            if row.closed_at is None:
                row.closed_at = utcnow()
            session.flush()
            return self._to_finding(row)

    # Artifacts

    def replace_artifacts(self, case_id: str, artifacts: List[Artifact]) -> None:
        with self._session() as session:
            session.query(ArtifactRow).filter(ArtifactRow.case_id == case_id).delete()
            for artifact in artifacts:
                session.add(
                    ArtifactRow(
                        case_id=case_id,
                        name=artifact.name,
                        kind=artifact.kind.value,
                        subject_email=artifact.subject_email.lower(),
                        app_display_name=artifact.app_display_name,
                        client_id=artifact.client_id,
                        status=artifact.status.value,
                        risk=artifact.risk.value,
                        scopes=list(artifact.scopes),
                        metadata_json=_jsonable(artifact.metadata),
                        created_at=artifact.created_at,
                    )
                )

    def list_artifacts(self, case_id: Optional[str] = None, email: Optional[str] = None) -> List[Artifact]:
        with self._session() as session:
            query = session.query(ArtifactRow)
            if case_id:
                query = query.filter(ArtifactRow.case_id == case_id)
            if email:
                query = query.filter(ArtifactRow.subject_email == email.lower())
            return [
                Artifact(
                    kind=ArtifactKind(r.kind),
                    subject_email=r.subject_email,
                    app_display_name=r.app_display_name or "",
                    client_id=r.client_id or "",
                    risk=RiskTier(r.risk),
                    status=ArtifactStatus(r.status),
                    scopes=list(r.scopes or []),
                    created_at=_aware(r.created_at),
                    metadata=dict(r.metadata_json or {}),
                    name=r.name or "",
                    case_id=r.case_id,
                )
                for r in query.order_by(ArtifactRow.id.asc()).all()
            ]

    # Audit log

    def list_audit_logs(
        self,
        target_email: Optional[str] = None,
        action_type: Optional[str] = None,
        limit: int = 200,
    ) -> List[AuditEntry]:
        with self._session() as session:
            query = session.query(AuditRow)
            if target_email:
                query = query.filter(func.lower(AuditRow.target_email) == target_email.lower())
            if action_type:
                query = query.filter(AuditRow.action_type == action_type)
            rows = query.order_by(AuditRow.timestamp.desc()).limit(limit).all()
            return [
                AuditEntry(
                    id=r.id,
                    actor=r.actor,
                    action_type=r.action_type,
                    target_email=r.target_email,
                    result=r.result,
                    remediation_type=r.remediation_type,
                    request=r.request,
                    response=r.response,
                    timestamp=_aware(r.timestamp),
                )
                for r in rows
            ]

    def log_action(self, entry: AuditEntry) -> AuditEntry:
        stored = replace(entry, id=entry.id or _new_id("AUD"))
        with self._session() as session:
            session.add(
                AuditRow(
                    id=stored.id,
                    actor=stored.actor,
                    action_type=stored.action_type,
                    target_email=stored.target_email,
                    result=stored.result,
                    remediation_type=stored.remediation_type,
                    request=_jsonable(stored.request),
                    response=_jsonable(stored.response),
                    timestamp=stored.timestamp,
                )
            )
        logger.debug("audit_logged", audit_id=stored.id, action_type=stored.action_type)
        return stored

    # Settings

    def get_settings(self) -> EngineSettings:
        with self._session() as session:
            row = session.get(SettingsRow, 1)
            if row is None:
                settings = EngineSettings.from_dict(self._initial_settings)
                session.add(SettingsRow(id=1, data=settings.to_dict()))
                return settings
            return EngineSettings.from_dict(row.data)

    def update_settings(self, **patch) -> EngineSettings:
        current = self.get_settings().to_dict()
        unknown = set(patch) - set(current)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")
        current.update(patch)
        settings = EngineSettings.from_dict(current)

        with self._session() as session:
            row = session.get(SettingsRow, 1)
            row.data = settings.to_dict()

        logger.info("settings_updated", keys=sorted(patch))
        return settings
