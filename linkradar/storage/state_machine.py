"""Archive lifecycle state machine backed by an append-only transition log.

Current state is never stored on the archive row. It is the ``to_state`` of the
single transition flagged ``most_recent``; every change appends a new row with a
larger ``sort_key`` and clears the flag on the previous one.

Example:
    >>> machine = ArchiveStateMachine(session, archive.id)
    >>> await machine.transition_to(ArchiveState.PROCESSING, {"attempt": 1})
    >>> await machine.current_state()
    <ArchiveState.PROCESSING: 'processing'>
"""

from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from linkradar.archiving.models import ErrorReason
from linkradar.core.metadata import MetadataKeys
from linkradar.storage.models import ContentArchive, ContentArchiveTransition

SORT_KEY_STEP = 10


class ArchiveState(str, Enum):
    """Lifecycle states of a content archive."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({ArchiveState.COMPLETED, ArchiveState.FAILED})

INITIAL_STATE = ArchiveState.PENDING

# pending -> failed exists only for the disabled short-circuit
ALLOWED_TRANSITIONS: dict[ArchiveState, frozenset[ArchiveState]] = {
    ArchiveState.PENDING: frozenset({ArchiveState.PROCESSING, ArchiveState.FAILED}),
    ArchiveState.PROCESSING: frozenset({ArchiveState.COMPLETED, ArchiveState.FAILED}),
    ArchiveState.COMPLETED: frozenset(),
    ArchiveState.FAILED: frozenset(),
}


class TransitionNotAllowedError(Exception):
    """Raised when a transition is not permitted from the current state."""

    def __init__(self, archive_id: UUID, from_state: ArchiveState, to_state: ArchiveState):
        super().__init__(
            f"Cannot transition archive {archive_id} from "
            f"{from_state.value} to {to_state.value}"
        )
        self.archive_id = archive_id
        self.from_state = from_state
        self.to_state = to_state


class InvalidTransitionMetadataError(ValueError):
    """Raised when transition metadata is missing required keys."""


class ArchiveNotFoundError(LookupError):
    """Raised when the archive row no longer exists."""

    def __init__(self, archive_id: UUID):
        super().__init__(f"Content archive {archive_id} not found")
        self.archive_id = archive_id


def initial_transition(archive: ContentArchive) -> ContentArchiveTransition:
    """Build the ``pending`` transition written when an archive is created."""
    return ContentArchiveTransition(
        content_archive=archive,
        to_state=INITIAL_STATE.value,
        metadata_={},
        sort_key=0,
        most_recent=True,
    )


def validate_metadata(to_state: ArchiveState, metadata: dict[str, Any]) -> None:
    """Check the metadata required for ``to_state``.

    Failed transitions must name a known ``error_reason``.

    Raises:
        InvalidTransitionMetadataError: If a failed transition has no valid reason
    """
    if to_state is not ArchiveState.FAILED:
        return
    reason = metadata.get(MetadataKeys.ERROR_REASON)
    try:
        ErrorReason(reason)
    except ValueError as e:
        raise InvalidTransitionMetadataError(
            f"Failed transitions require a valid error_reason, got {reason!r}"
        ) from e


class ArchiveStateMachine:
    """State machine for one content archive, bound to a session.

    The machine neither commits nor opens transactions; callers wrap
    ``transition_to`` together with their own row updates in one
    ``session.begin()`` block so both land or neither does.

    Args:
        session: Active async session
        archive_id: Archive the machine operates on
    """

    def __init__(self, session: AsyncSession, archive_id: UUID) -> None:
        self.session = session
        self.archive_id = archive_id

    async def last_transition(self) -> ContentArchiveTransition | None:
        """Return the transition flagged most recent, if any."""
        result = await self.session.execute(
            select(ContentArchiveTransition).where(
                ContentArchiveTransition.content_archive_id == self.archive_id,
                ContentArchiveTransition.most_recent.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def current_state(self) -> ArchiveState:
        transition = await self.last_transition()
        if transition is None:
            return INITIAL_STATE
        return ArchiveState(transition.to_state)

    async def history(self) -> list[ContentArchiveTransition]:
        """All transitions in ``sort_key`` order."""
        result = await self.session.execute(
            select(ContentArchiveTransition)
            .where(ContentArchiveTransition.content_archive_id == self.archive_id)
            .order_by(ContentArchiveTransition.sort_key)
        )
        return list(result.scalars().all())

    async def last_transition_to(
        self, state: ArchiveState
    ) -> ContentArchiveTransition | None:
        """Most recent transition into ``state``, if one was ever made."""
        result = await self.session.execute(
            select(ContentArchiveTransition)
            .where(
                ContentArchiveTransition.content_archive_id == self.archive_id,
                ContentArchiveTransition.to_state == state.value,
            )
            .order_by(ContentArchiveTransition.sort_key.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def in_terminal_state(self) -> bool:
        return (await self.current_state()).is_terminal

    async def can_transition_to(self, state: ArchiveState) -> bool:
        return state in ALLOWED_TRANSITIONS[await self.current_state()]

    async def transition_to(
        self,
        state: ArchiveState,
        metadata: dict[str, Any] | None = None,
    ) -> ContentArchiveTransition:
        """Append a transition into ``state``.

        Args:
            state: Target state
            metadata: Context stored on the transition row

        Returns:
            The new transition

        Raises:
            ArchiveNotFoundError: If the archive row is gone
            TransitionNotAllowedError: If ``state`` is not reachable from the
                current state
            InvalidTransitionMetadataError: If required metadata is missing
        """
        metadata = dict(metadata or {})
        archive = await self.session.get(ContentArchive, self.archive_id)
        if archive is None:
            raise ArchiveNotFoundError(self.archive_id)

        last = await self.last_transition()
        from_state = ArchiveState(last.to_state) if last else INITIAL_STATE
        if state not in ALLOWED_TRANSITIONS[from_state]:
            raise TransitionNotAllowedError(self.archive_id, from_state, state)
        validate_metadata(state, metadata)

        sort_key = SORT_KEY_STEP
        if last is not None:
            sort_key = last.sort_key + SORT_KEY_STEP
            # Clear the flag before inserting so the partial unique index holds
            last.most_recent = False
            await self.session.flush()

        transition = ContentArchiveTransition(
            content_archive_id=self.archive_id,
            to_state=state.value,
            metadata_=metadata,
            sort_key=sort_key,
            most_recent=True,
        )
        self.session.add(transition)
        await self.session.flush()
        return transition
