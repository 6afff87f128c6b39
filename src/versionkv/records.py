"""Metadata and job-link records persisted by the gateway."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# Version pointer of a key that has been registered but never written
UNSET_VERSION = "0000"

Operation = Literal["reg", "set", "reg&set"]


class MetadataRecord(BaseModel):
    """Per-key control record: registration state, latest version, tombstone."""

    model_config = ConfigDict(populate_by_name=True)

    key: str
    init: bool = False
    oper: Operation = "reg"
    store_id: str = Field(default=UNSET_VERSION, alias="storeId")
    job_id: str = Field(default="", alias="jobId")
    check: bool = False
    schema_key: str = Field(default="", alias="schemaKey")
    deleted: str = ""

    def model_post_init(self, __context: object) -> None:
        if not self.schema_key:
            self.schema_key = self.key

    def has_version(self) -> bool:
        return bool(self.store_id) and self.store_id != UNSET_VERSION

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, blob: str | bytes) -> MetadataRecord:
        return cls.model_validate_json(blob)


class JobLink(BaseModel):
    """Links one object version to the job that wrote it."""

    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")
    store_id: str = Field(alias="storeId")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)
