"""Data models for source member migration."""

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from ..core.exceptions import ScopeError
from ..utils import dedupe, format_duration, validate_object_name
from .enums import MigrationState, ScopeKind


class MigrationScope(BaseModel):
    """What the caller asked to migrate: a library, one source PF, or named members.

    Names are canonicalized to uppercase. Invalid names and a member list
    without a source PF raise ``ScopeError``.
    """

    library: str
    container: str | None = None
    members: list[str] = Field(default_factory=list)

    @field_validator("library", mode="before")
    @classmethod
    def _canonical_library(cls, value: str) -> str:
        try:
            return validate_object_name(value, "library")
        except ValueError as e:
            raise ScopeError(str(e)) from e

    @field_validator("container", mode="before")
    @classmethod
    def _canonical_container(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        try:
            return validate_object_name(value, "source PF")
        except ValueError as e:
            raise ScopeError(str(e)) from e

    @field_validator("members", mode="before")
    @classmethod
    def _canonical_members(cls, value: list[str] | None) -> list[str]:
        names = []
        for raw in value or []:
            if not raw.strip():
                continue
            try:
                names.append(validate_object_name(raw, "member"))
            except ValueError as e:
                raise ScopeError(str(e)) from e
        return dedupe(names)

    @model_validator(mode="after")
    def _members_need_container(self) -> "MigrationScope":
        if self.members and not self.container:
            raise ScopeError("Members can only be specified when a specific source PF is provided.")
        return self

    @property
    def kind(self) -> ScopeKind:
        if self.members:
            return ScopeKind.MEMBERS
        if self.container:
            return ScopeKind.CONTAINER
        return ScopeKind.LIBRARY


class MigrationTarget(BaseModel):
    """One resolved member copy: source member to destination stream file."""

    model_config = ConfigDict(frozen=True)

    library: str
    container: str
    member: str
    source_type: str
    destination_dir: str

    @property
    def file_name(self) -> str:
        return f"{self.member}.{self.source_type}"

    @property
    def destination_path(self) -> str:
        return f"{self.destination_dir.rstrip('/')}/{self.file_name}"

    @property
    def source_path(self) -> str:
        """Integrated file system path of the source member."""
        return (
            f"/QSYS.LIB/{self.library}.LIB/{self.container}.FILE/{self.member}.MBR"
        )

    @property
    def label(self) -> str:
        return f"{self.container}/{self.member}"


class TransferOutcome(BaseModel):
    """Result of one member transfer; failures carry a reason instead of raising."""

    model_config = ConfigDict(frozen=True)

    target: MigrationTarget
    success: bool
    reason: str = ""

    @classmethod
    def ok(cls, target: MigrationTarget) -> "TransferOutcome":
        return cls(target=target, success=True)

    @classmethod
    def failed(cls, target: MigrationTarget, reason: str) -> "TransferOutcome":
        return cls(target=target, success=False, reason=reason or "unknown error")


class MigrationSummary(BaseModel):
    """Counters and details for one migration run.

    ``containers_migrated`` counts source PFs whose members were all
    dispatched, not source PFs that finished without errors; see
    ``failed_members`` for per-member failures.
    """

    library: str
    output_root: str
    containers_migrated: int = 0
    members_migrated: int = 0
    errors: int = 0
    skipped: int = 0
    elapsed_seconds: float = 0.0
    cancelled: bool = False
    dry_run: bool = False
    state: MigrationState = MigrationState.IDLE
    migrated_paths: list[str] = Field(default_factory=list)
    planned_paths: list[str] = Field(default_factory=list)
    failed_members: dict[str, str] = Field(default_factory=dict)

    @computed_field
    @property
    def dispatched(self) -> int:
        return self.members_migrated + self.errors

    def record(self, outcome: TransferOutcome) -> None:
        """Fold one transfer outcome into the counters."""
        if outcome.success:
            self.members_migrated += 1
            self.migrated_paths.append(outcome.target.destination_path)
        else:
            self.errors += 1
            self.failed_members[outcome.target.label] = outcome.reason

    def report_lines(self) -> list[str]:
        """Human-readable summary block printed at the end of a run."""
        header = "Dry run completed." if self.dry_run else "Migration completed."
        lines = [
            "",
            header,
            f"Total Source PFs migrated: {self.containers_migrated}",
            f"Total members migrated: {self.members_migrated}",
            f"Migration errors: {self.errors}",
        ]
        if self.dry_run:
            lines.append(f"Members that would be migrated: {len(self.planned_paths)}")
        if self.skipped:
            lines.append(f"Members not dispatched: {self.skipped}")
        lines.append(f"Total time taken: {format_duration(self.elapsed_seconds)}")
        return lines
