"""
DynamoDB-backed storage for calendar events and subject cycle profiles.

Events, their details and the subject profile share one partition per subject:

    PK = SUBJECT#<subject_id>   SK = PROFILE
    PK = SUBJECT#<subject_id>   SK = EVENT#<event_id>
    PK = SUBJECT#<subject_id>   SK = DETAIL#<event_id>#<detail_type_id>
    PK = SUBJECT#<subject_id>   SK = OPEN_PERIOD

Each event also carries ``kind_beginning`` (served by the event index) and
``range_end`` so date windows can be queried without loading the whole
partition. The OPEN_PERIOD item names the subject's open period; writes that
open a second one fail their transaction. Detail types are reference items
under ``PK = DETAIL_TYPE#<kind>``.

Typical usage:
    store = EventStore(get_dynamo())
    menses = store.query_events(subject_id, EventKind.MENSES)
    with store.transaction() as tx:
        tx.upsert_event(event)
        tx.update_cycle_profile(subject_id, Inactive())
"""
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Tuple

from aws_lambda_powertools import Logger
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import BotoCoreError, ClientError

from src.models.event import CycleEvent, EventDetail, EventDetailType, EventKind
from src.models.subject import Active, PregnancyStatus, SubjectCycleProfile
from src.services.exceptions import NotFoundError, OpenPeriodError, StoreError, ValidationError
from src.utils.dynamo import (
    DETAIL_SK_PREFIX,
    DynamoDBClient,
    OPEN_PERIOD_SK,
    PROFILE_SK,
    create_detail_sk,
    create_detail_type_pk,
    create_event_sk,
    create_kind_beginning,
    create_pk,
)

logger = Logger()

def new_event_id() -> str:
    """Generate an id for an event about to be stored."""
    return uuid.uuid4().hex

@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Convert DynamoDB failures into StoreError, keeping the original as cause."""
    try:
        yield
    except (ClientError, BotoCoreError) as e:
        logger.error(
            "Event store operation failed",
            extra={"operation": operation, "error": str(e), "error_type": e.__class__.__name__}
        )
        raise StoreError(f"{operation} failed: {e}") from e

def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None

def event_to_item(event: CycleEvent) -> Dict[str, Any]:
    """Serialize an event into a table item."""
    if event.calculated or event.kind.is_calculated:
        raise ValidationError(f"{event.kind.value} events are calculated and cannot be stored")
    item = {
        "PK": create_pk(event.subject_id),
        "SK": create_event_sk(event.id),
        "id": event.id,
        "subject_id": event.subject_id,
        "kind": event.kind.value,
        "kind_beginning": create_kind_beginning(event.kind.value, event.beginning.isoformat()),
        "beginning": event.beginning.isoformat(),
        "range_end": event.last_day.isoformat(),
        "deleted": event.deleted,
        "last_modified": event.last_modified.isoformat(),
    }
    if event.ending is not None:
        item["ending"] = event.ending.isoformat()
    if event.value is not None:
        item["value"] = Decimal(str(event.value))
    return item

def item_to_event(item: Dict[str, Any]) -> CycleEvent:
    """Deserialize a table item into an event."""
    value = item.get("value")
    return CycleEvent(
        id=item["id"],
        subject_id=item["subject_id"],
        kind=EventKind(item["kind"]),
        beginning=item["beginning"],
        ending=item.get("ending"),
        value=float(value) if value is not None else None,
        deleted=bool(item.get("deleted", False)),
        last_modified=item["last_modified"],
    )

def item_to_profile(item: Dict[str, Any]) -> SubjectCycleProfile:
    """Deserialize a profile item."""
    def as_int(name: str) -> Optional[int]:
        value = item.get(name)
        return int(value) if value is not None else None

    return SubjectCycleProfile(
        subject_id=item["subject_id"],
        team_id=item.get("team_id"),
        duration_period=as_int("duration_period"),
        duration_menstruation=as_int("duration_menstruation"),
        ovulation_date=item.get("ovulation_date"),
        childbirthdate=item.get("childbirthdate"),
        last_modified=item["last_modified"],
    )

def detail_to_item(subject_id: str, detail: EventDetail) -> Dict[str, Any]:
    """Serialize an event detail into a table item."""
    item = {
        "PK": create_pk(subject_id),
        "SK": create_detail_sk(detail.event_id, detail.detail_type_id),
        "event_id": detail.event_id,
        "detail_type_id": detail.detail_type_id,
        "deleted": detail.deleted,
        "last_modified": detail.last_modified.isoformat(),
    }
    if detail.label is not None:
        item["label"] = detail.label
    if detail.value is not None:
        item["value"] = detail.value
    return item

def item_to_detail(item: Dict[str, Any]) -> EventDetail:
    value = item.get("value")
    return EventDetail(
        event_id=item["event_id"],
        detail_type_id=int(item["detail_type_id"]),
        label=item.get("label"),
        value=int(value) if value is not None else None,
        deleted=bool(item.get("deleted", False)),
        last_modified=item["last_modified"],
    )

def item_to_detail_type(item: Dict[str, Any]) -> EventDetailType:
    return EventDetailType(
        id=int(item["id"]),
        kind=EventKind(item["kind"]),
        label=item["label"],
        deleted=bool(item.get("deleted", False)),
    )

def _profile_update(status: PregnancyStatus) -> Tuple[str, Dict[str, Any]]:
    ovulation_date, childbirthdate = (
        (status.ovulation_date, status.due_date) if isinstance(status, Active) else (None, None)
    )
    return (
        "SET ovulation_date = :ov, childbirthdate = :cb, last_modified = :lm",
        {
            ":ov": _iso(ovulation_date),
            ":cb": _iso(childbirthdate),
            ":lm": datetime.now(timezone.utc).isoformat(),
        },
    )

class StoreTransaction:
    """
    Unit of work staging writes for a single TransactWriteItems call.

    Nothing reaches the table until ``commit``; a failed commit leaves every
    staged item unwritten.
    """

    def __init__(self, dynamo: DynamoDBClient):
        self.dynamo = dynamo
        self.items: List[Dict[str, Dict[str, Any]]] = []
        self.open_period_claims: List[int] = []

    def upsert_event(self, event: CycleEvent) -> CycleEvent:
        """
        Stage a full write of the event, creating or replacing it.

        Writing an open period also claims the subject's OPEN_PERIOD item; the
        claim fails at commit when another period holds it.
        """
        event = event.model_copy(update={"last_modified": datetime.now(timezone.utc)})
        self.items.append({"Put": {"Item": event_to_item(event)}})
        if event.is_open and not event.deleted:
            self._claim_open_period(event)
        return event

    def _claim_open_period(self, event: CycleEvent) -> None:
        self.open_period_claims.append(len(self.items))
        self.items.append({
            "Put": {
                "Item": {
                    "PK": create_pk(event.subject_id),
                    "SK": OPEN_PERIOD_SK,
                    "open_period_id": event.id,
                    "last_modified": event.last_modified.isoformat(),
                },
                "ConditionExpression": "attribute_not_exists(PK) OR open_period_id = :id",
                "ExpressionAttributeValues": {":id": event.id},
            }
        })

    def release_open_period(self, subject_id: str, event_id: str) -> None:
        """Stage the release of the OPEN_PERIOD item held by ``event_id``."""
        self.items.append({
            "Delete": {
                "Key": {"PK": create_pk(subject_id), "SK": OPEN_PERIOD_SK},
                "ConditionExpression": "attribute_not_exists(PK) OR open_period_id = :id",
                "ExpressionAttributeValues": {":id": event_id},
            }
        })

    def upsert_detail(self, subject_id: str, detail: EventDetail) -> EventDetail:
        """Stage a write of an event detail; deselected details are kept with ``deleted``."""
        detail = detail.model_copy(update={"last_modified": datetime.now(timezone.utc)})
        self.items.append({"Put": {"Item": detail_to_item(subject_id, detail)}})
        return detail

    def soft_delete_event(self, subject_id: str, event_id: str) -> None:
        """Stage the deleted flag of an existing event."""
        self.items.append({
            "Update": {
                "Key": {"PK": create_pk(subject_id), "SK": create_event_sk(event_id)},
                "UpdateExpression": "SET deleted = :d, last_modified = :lm",
                "ExpressionAttributeValues": {
                    ":d": True,
                    ":lm": datetime.now(timezone.utc).isoformat(),
                },
                "ConditionExpression": "attribute_exists(PK)",
            }
        })

    def update_cycle_profile(self, subject_id: str, status: PregnancyStatus) -> None:
        """Stage the pregnancy fields of an existing subject profile."""
        expression, values = _profile_update(status)
        self.items.append({
            "Update": {
                "Key": {"PK": create_pk(subject_id), "SK": PROFILE_SK},
                "UpdateExpression": expression,
                "ExpressionAttributeValues": values,
                "ConditionExpression": "attribute_exists(PK)",
            }
        })

    def _open_period_taken(self, error: ClientError) -> bool:
        reasons = error.response.get("CancellationReasons") or []
        return any(
            index < len(reasons) and reasons[index].get("Code") == "ConditionalCheckFailed"
            for index in self.open_period_claims
        )

    def commit(self) -> None:
        """
        Write every staged item in one transaction.

        Raises:
            OpenPeriodError: If another period took the OPEN_PERIOD item first
            StoreError: If the transaction fails for any other reason
        """
        if not self.items:
            return
        with store_errors("transaction"):
            try:
                self.dynamo.transact_write(self.items)
            except ClientError as e:
                if self._open_period_taken(e):
                    logger.info("Open period claim rejected", extra={"writes": len(self.items)})
                    raise OpenPeriodError(
                        "A period is already open. Close it before starting a new one"
                    ) from e
                raise
        logger.debug("Transaction committed", extra={"writes": len(self.items)})
        self.items = []
        self.open_period_claims = []

class EventStore:
    """Read and write access to a subject's calendar events."""

    def __init__(self, dynamo: DynamoDBClient):
        self.dynamo = dynamo

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        """
        Open a unit of work; staged writes commit when the block exits cleanly.

        Example:
            >>> with store.transaction() as tx:
            ...     tx.upsert_event(event)
            ...     tx.update_cycle_profile(subject_id, status)
        """
        tx = StoreTransaction(self.dynamo)
        yield tx
        tx.commit()

    def query_events(
        self,
        subject_id: str,
        kind: Optional[EventKind] = None,
        date_range: Optional[Tuple[date, date]] = None,
        include_deleted: bool = False
    ) -> List[CycleEvent]:
        """
        Query a subject's events.

        Args:
            subject_id: Subject whose partition is queried
            kind: Optional kind restriction, served by the event index
            date_range: Optional inclusive (start, end); keeps events
                overlapping the window
            include_deleted: Whether soft-deleted events are returned

        Returns:
            Events ordered by beginning, most recent first
        """
        conditions = []
        if date_range is not None:
            start, end = date_range
            conditions.append(Attr("range_end").gte(start.isoformat()))
            if kind is None:
                conditions.append(Attr("beginning").lte(end.isoformat()))
        if not include_deleted:
            conditions.append(Attr("deleted").eq(False))

        filter_expression = None
        for condition in conditions:
            filter_expression = condition if filter_expression is None else filter_expression & condition

        with store_errors("query_events"):
            if kind is not None:
                if date_range is not None:
                    sort_condition = Key("kind_beginning").between(
                        create_kind_beginning(kind.value),
                        create_kind_beginning(kind.value, date_range[1].isoformat())
                    )
                else:
                    sort_condition = Key("kind_beginning").begins_with(create_kind_beginning(kind.value))
                items = self.dynamo.query_items(
                    partition_key="PK",
                    partition_value=create_pk(subject_id),
                    sort_key_condition=sort_condition,
                    filter_expression=filter_expression,
                    index_name=self.dynamo.event_index,
                    scan_forward=False
                )
            else:
                items = self.dynamo.query_items(
                    partition_key="PK",
                    partition_value=create_pk(subject_id),
                    sort_key_condition=Key("SK").begins_with(create_event_sk("")),
                    filter_expression=filter_expression
                )

        events = [item_to_event(item) for item in items]
        return sorted(events, key=lambda e: e.beginning, reverse=True)

    def get_event(self, subject_id: str, event_id: str) -> CycleEvent:
        """
        Load one event.

        Raises:
            NotFoundError: If the event does not exist
        """
        with store_errors("get_event"):
            item = self.dynamo.get_item({"PK": create_pk(subject_id), "SK": create_event_sk(event_id)})
        if item is None:
            raise NotFoundError(f"Event {event_id} not found")
        return item_to_event(item)

    def latest_event(self, subject_id: str, kind: EventKind) -> Optional[CycleEvent]:
        """Most recent non-deleted event of a kind, if any."""
        events = self.query_events(subject_id, kind)
        return events[0] if events else None

    def open_menses(self, subject_id: str) -> Optional[CycleEvent]:
        """The subject's open period, if any."""
        return next((e for e in self.query_events(subject_id, EventKind.MENSES) if e.is_open), None)

    def upsert_event(self, event: CycleEvent) -> CycleEvent:
        """Create or replace an event in its own transaction."""
        with self.transaction() as tx:
            stored = tx.upsert_event(event)
        return stored

    def soft_delete_event(self, subject_id: str, event_id: str) -> None:
        """
        Mark an event deleted, keeping it for history.

        Deleting the open period also releases the OPEN_PERIOD item.

        Raises:
            NotFoundError: If the event does not exist
        """
        event = self.get_event(subject_id, event_id)
        with self.transaction() as tx:
            tx.soft_delete_event(subject_id, event_id)
            if event.is_open:
                tx.release_open_period(subject_id, event_id)

    def query_details(self, subject_id: str) -> List[EventDetail]:
        """Non-deleted details of every event of the subject."""
        with store_errors("query_details"):
            items = self.dynamo.query_items(
                partition_key="PK",
                partition_value=create_pk(subject_id),
                sort_key_condition=Key("SK").begins_with(DETAIL_SK_PREFIX),
                filter_expression=Attr("deleted").eq(False)
            )
        return [item_to_detail(item) for item in items]

    def get_detail_types(self, kind: EventKind) -> List[EventDetailType]:
        """Selectable detail types of an event kind, ordered by label."""
        with store_errors("get_detail_types"):
            items = self.dynamo.query_items(
                partition_key="PK",
                partition_value=create_detail_type_pk(kind.value),
                filter_expression=Attr("deleted").eq(False)
            )
        return sorted((item_to_detail_type(item) for item in items), key=lambda t: t.label)

class SubjectRepository:
    """Access to the cycle fields of subject profiles."""

    def __init__(self, dynamo: DynamoDBClient):
        self.dynamo = dynamo

    def get_cycle_profile(self, subject_id: str) -> SubjectCycleProfile:
        """
        Load a subject's cycle profile.

        Raises:
            NotFoundError: If the subject does not exist
        """
        with store_errors("get_cycle_profile"):
            item = self.dynamo.get_item({"PK": create_pk(subject_id), "SK": PROFILE_SK})
        if item is None:
            raise NotFoundError(f"Subject {subject_id} not found")
        return item_to_profile(item)

    def update_cycle_profile(self, subject_id: str, status: PregnancyStatus) -> None:
        """Write the pregnancy fields outside of a larger transaction."""
        expression, values = _profile_update(status)
        with store_errors("update_cycle_profile"):
            self.dynamo.update_item(
                key={"PK": create_pk(subject_id), "SK": PROFILE_SK},
                update_expression=expression,
                expression_values=values
            )
