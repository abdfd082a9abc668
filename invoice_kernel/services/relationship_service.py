"""
Service layer for the Relationship ledger.

A relationship groups the charges one entity (payor) owes another (payee)
under a unique description.  The description is the double-submit guard:
a second add with the same description raises DuplicateDescriptionError and
the table keeps exactly one row.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import select

from invoice_kernel.domain.dtos import RelationshipInfo
from invoice_kernel.domain.references import compile_pattern
from invoice_kernel.logging_config import get_logger
from invoice_kernel.models.entity import Entity
from invoice_kernel.models.relation import Relation
from invoice_kernel.services.base import BaseService

logger = get_logger("services.relationship")


class RelationshipService(BaseService[Relation]):

    def add_relationship(self, description: str, payee: Any, payor: Any) -> RelationshipInfo:
        """
        Raises:
            DuplicateDescriptionError: description already used.
            UnknownReferenceError: payee or payor does not exist.
        """
        if not description:
            raise ValueError("Relationship description is required")
        payee_row = self._load(Entity, payee)
        payor_row = self._load(Entity, payor)
        self._require_unique(Relation, "description", description)

        relation = Relation(description=description, payee=payee_row.id, payor=payor_row.id)
        self.session.add(relation)
        self._flush_unique("Relation", "description", description)

        logger.info(
            "relationship_added",
            extra={"relationship_id": relation.id, "payee": payee_row.id, "payor": payor_row.id},
        )
        return RelationshipInfo.from_model(relation)

    def get(self, reference: Any) -> RelationshipInfo:
        return RelationshipInfo.from_model(self._load(Relation, reference))

    def relationships(self, pattern: Any = None) -> list[RelationshipInfo]:
        """All relationships ordered by id, optionally filtered by a description regex."""
        regex = compile_pattern(pattern)
        rows = self.session.execute(select(Relation).order_by(Relation.id)).scalars()
        return [
            RelationshipInfo.from_model(row)
            for row in rows
            if regex is None or regex.search(row.description)
        ]
