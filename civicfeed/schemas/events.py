"""Change-feed event envelope."""

from typing import Any, Literal

from pydantic import BaseModel, model_validator


class ChangeEvent(BaseModel):
    """
    One row change as delivered by the change feed.

    INSERT and UPDATE carry the full row in ``new``; DELETE carries only
    ``old = {"id": ...}``.
    """

    kind: Literal["INSERT", "UPDATE", "DELETE"]
    table: str
    new: dict[str, Any] | None = None
    old: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _check_payload(self) -> "ChangeEvent":
        if self.kind == "DELETE":
            if not self.old or not self.old.get("id"):
                raise ValueError("DELETE event must carry old.id")
        elif not self.new or not self.new.get("id"):
            raise ValueError(f"{self.kind} event must carry new.id")
        return self

    @property
    def entity_id(self) -> str:
        source = self.old if self.kind == "DELETE" else self.new
        return str(source["id"])
