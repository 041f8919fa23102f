from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class AuditLog(db.Model):
    """
    Who did what to which entity, with before/after snapshots.

    Written by the audited() decorator inside the audited operation's
    transaction, so a rolled-back operation leaves no audit row.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_entity", "entity", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(db.Integer, nullable=True, index=True)
    action = db.Column(db.String(64), nullable=False, index=True)
    entity = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=True)
    before_json = db.Column(db.JSON, nullable=True)
    after_json = db.Column(db.JSON, nullable=True)
    at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "action": self.action,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "before": self.before_json,
            "after": self.after_json,
            "at": to_utc_z(self.at),
        }


class IdempotencyKey(db.Model):
    """
    Stored result of an externally retried operation.

    key is UNIQUE: the insert itself is the existence check.
    """
    __tablename__ = "idempotency_keys"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(255), nullable=False, unique=True)
    endpoint = db.Column(db.String(128), nullable=False)
    payload_hash = db.Column(db.String(64), nullable=False)
    response = db.Column(db.JSON, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "endpoint": self.endpoint,
            "payload_hash": self.payload_hash,
            "response": self.response,
            "created_at": to_utc_z(self.created_at),
        }
