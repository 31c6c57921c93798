"""
DynamoDB utility functions for data access.
"""
import os
from typing import Dict, List, Optional, Any, Union
import boto3
from boto3.dynamodb.conditions import Key, ConditionBase

DEFAULT_EVENT_INDEX = "KindBeginningIndex"
PROFILE_SK = "PROFILE"
OPEN_PERIOD_SK = "OPEN_PERIOD"
DETAIL_SK_PREFIX = "DETAIL#"

# Singleton instance
_dynamo_instance = None

def get_dynamo() -> 'DynamoDBClient':
    """
    Get or create singleton DynamoDB client instance.

    This is the ONLY way to access DynamoDB in this project outside tests. It
    ensures consistent table access across the codebase and proper error
    handling for missing configuration.

    Example:
        dynamo = get_dynamo()
        item = dynamo.get_item({"PK": "SUBJECT#123", "SK": "PROFILE"})

    Returns:
        DynamoDBClient: Singleton instance of DynamoDB client

    Raises:
        EnvironmentError: If TRACKER_TABLE_NAME environment variable is not set
    """
    global _dynamo_instance
    if _dynamo_instance is None:
        try:
            table_name = os.environ['TRACKER_TABLE_NAME']
        except KeyError:
            raise EnvironmentError(
                "TRACKER_TABLE_NAME environment variable not set. "
                "This variable must be set to the DynamoDB table name."
            )
        _dynamo_instance = DynamoDBClient(
            table_name,
            event_index=os.environ.get('TRACKER_EVENT_INDEX', DEFAULT_EVENT_INDEX)
        )
    return _dynamo_instance

class DynamoDBClient:
    """Client for interacting with the single tracker table."""

    def __init__(self, table_name: str, event_index: str = DEFAULT_EVENT_INDEX):
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        self.table_name = table_name
        self.event_index = event_index

    def get_item(self, key: Dict[str, str]) -> Optional[Dict[str, Any]]:
        """
        Get a single item from the table.

        Args:
            key: Dictionary containing partition key and sort key

        Returns:
            Item if found, None otherwise
        """
        response = self.table.get_item(Key=key)
        return response.get('Item')

    def query_items(
        self,
        partition_key: str,
        partition_value: str,
        sort_key_condition: Optional[ConditionBase] = None,
        filter_expression: Optional[ConditionBase] = None,
        index_name: Optional[str] = None,
        scan_forward: bool = True
    ) -> List[Dict[str, Any]]:
        """
        Query items using partition key and optional sort key condition.

        Follows LastEvaluatedKey so filtered queries return every match.

        Args:
            partition_key: Name of partition key
            partition_value: Value of partition key
            sort_key_condition: Optional sort key condition
            filter_expression: Optional filter applied to the matched items
            index_name: Optional secondary index to query
            scan_forward: Sort order on the sort key (False for descending)

        Returns:
            List of matching items
        """
        key_condition = Key(partition_key).eq(partition_value)
        if sort_key_condition is not None:
            key_condition = key_condition & sort_key_condition

        params: Dict[str, Any] = {
            'KeyConditionExpression': key_condition,
            'ScanIndexForward': scan_forward,
        }
        if filter_expression is not None:
            params['FilterExpression'] = filter_expression
        if index_name:
            params['IndexName'] = index_name

        items: List[Dict[str, Any]] = []
        while True:
            response = self.table.query(**params)
            items.extend(response.get('Items', []))
            last_key = response.get('LastEvaluatedKey')
            if not last_key:
                return items
            params['ExclusiveStartKey'] = last_key

    def update_item(
        self,
        key: Dict[str, str],
        update_expression: str,
        expression_values: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Update an item in the table.

        Args:
            key: Dictionary containing partition key and sort key
            update_expression: Update expression
            expression_values: Expression attribute values

        Returns:
            Response from DynamoDB
        """
        return self.table.update_item(
            Key=key,
            UpdateExpression=update_expression,
            ExpressionAttributeValues=expression_values,
            ReturnValues="ALL_NEW"
        )

    def transact_write(self, items: List[Dict[str, Dict[str, Any]]]) -> Dict[str, Any]:
        """
        Apply several writes atomically.

        Args:
            items: TransactItems entries such as {"Put": {"Item": {...}}};
                the table name is filled in for each entry

        Returns:
            Response from DynamoDB
        """
        transact_items = []
        for item in items:
            (operation, params), = item.items()
            transact_items.append({operation: {'TableName': self.table_name, **params}})
        return self.dynamodb.meta.client.transact_write_items(TransactItems=transact_items)

def create_pk(subject_id: str) -> str:
    """Create partition key from subject ID."""
    return f"SUBJECT#{subject_id}"

def create_event_sk(event_id: str) -> str:
    """Create sort key for calendar events."""
    return f"EVENT#{event_id}"

def create_kind_beginning(kind: str, beginning: str = "") -> str:
    """
    Create the event index sort key.

    Events of one kind sort by their ISO beginning date, so a descending query
    on the index returns the most recent event first.

    Args:
        kind: Event kind name
        beginning: ISO format beginning date, empty for a kind prefix

    Returns:
        Index key in format "{kind}#{beginning}"
    """
    return f"{kind}#{beginning}"

def create_detail_sk(event_id: str, detail_type_id: Union[int, str] = "") -> str:
    """
    Create sort key for an event detail.

    Details live in the subject partition next to their event; an empty
    ``detail_type_id`` gives the prefix of all details of the event.
    """
    return f"{DETAIL_SK_PREFIX}{event_id}#{detail_type_id}"

def create_detail_type_pk(kind: str) -> str:
    """Create partition key of the detail type catalog of an event kind."""
    return f"DETAIL_TYPE#{kind}"
