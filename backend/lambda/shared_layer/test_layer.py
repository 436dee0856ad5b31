"""test_layer.py — Unit tests for the directory_shared layer modules.

Run from the repository root:
    python3 -m pytest backend/lambda/shared_layer/test_layer.py -v
"""

from __future__ import annotations

import json
import os
import sys
import unittest
from decimal import Decimal
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError, EndpointConnectionError

# Ensure the layer's python/ directory and the test fakes are importable.
_HERE = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, os.path.join(_HERE, "python"))
sys.path.insert(0, _HERE)

from directory_shared.aws_clients import build_ddb_client, build_sqs_client
from directory_shared.config import DirectoryConfig
from directory_shared.consumer import IntentConsumer
from directory_shared.errors import (
    ConflictError,
    NotFoundError,
    TransientQueueError,
    TransientStoreError,
    UnrecognizedIntentError,
    ValidationError,
)
from directory_shared.http_utils import _error, _json_body, _path_method, _response
from directory_shared.intents import (
    CreateOrganization,
    CreateUser,
    UpdateOrganization,
    UpdateUser,
    parse_intent,
    to_message,
)
from directory_shared.producer import MutationProducer
from directory_shared.query import QueryService
from directory_shared.queue import IntentQueue, QueueMessage
from directory_shared.serialization import _deserialize, _now_iso, _serialize
from directory_shared.store import RecordStore, _build_set_expression
from directory_shared.validation import (
    ValidationOutcome,
    validate_organization_name,
    validate_user_email,
)

from fakes import InMemoryIntentQueue, InMemoryRecordStore

T0 = "2026-01-01T00:00:00.000Z"
T1 = "2026-01-02T00:00:00.000Z"


def _client_error(code: str, operation: str = "PutItem") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def _fixed_clock(*stamps: str):
    values = iter(stamps)
    return lambda: next(values)


def _id_seq(*ids: str):
    values = iter(ids)
    return lambda: next(values)


def _message(intent, message_id: str = "m-1") -> QueueMessage:
    return QueueMessage(message_id=message_id, body=to_message(intent))


class ConfigTests(unittest.TestCase):
    def test_defaults(self):
        config = DirectoryConfig.from_env({})
        self.assertEqual(config.organizations_table, "Organizations")
        self.assertEqual(config.users_table, "Users")
        self.assertEqual(config.users_org_index, "OrgId-index")
        self.assertFalse(config.offline)
        self.assertIsNone(config.dynamodb_endpoint)
        self.assertIsNone(config.sqs_endpoint)
        self.assertEqual(config.visibility_timeout, 300)

    def test_offline_endpoints(self):
        config = DirectoryConfig.from_env({"IS_OFFLINE": "true", "DYNAMODB_LOCAL_PORT": "8001"})
        self.assertTrue(config.offline)
        self.assertEqual(config.dynamodb_endpoint, "http://localhost:8001")
        self.assertEqual(config.sqs_endpoint, "http://localhost:9324")

    def test_offline_flag_values(self):
        for raw in ("1", "TRUE", " yes "):
            self.assertTrue(DirectoryConfig.from_env({"IS_OFFLINE": raw}).offline)
        for raw in ("on", "0", "false", ""):
            self.assertFalse(DirectoryConfig.from_env({"IS_OFFLINE": raw}).offline)

    def test_batch_size_is_clamped(self):
        self.assertEqual(DirectoryConfig.from_env({"QUEUE_BATCH_SIZE": "50"}).queue_batch_size, 10)
        self.assertEqual(DirectoryConfig.from_env({"QUEUE_BATCH_SIZE": "0"}).queue_batch_size, 1)
        self.assertEqual(DirectoryConfig.from_env({"QUEUE_BATCH_SIZE": "abc"}).queue_batch_size, 10)


class AwsClientTests(unittest.TestCase):
    @patch("directory_shared.aws_clients.boto3")
    def test_offline_ddb_client_uses_local_endpoint(self, mock_boto3):
        build_ddb_client(DirectoryConfig(offline=True))
        args, kwargs = mock_boto3.client.call_args
        self.assertEqual(args[0], "dynamodb")
        self.assertEqual(kwargs["endpoint_url"], "http://localhost:8000")
        self.assertEqual(kwargs["aws_access_key_id"], "test")

    @patch("directory_shared.aws_clients.boto3")
    def test_online_sqs_client_has_no_endpoint_override(self, mock_boto3):
        build_sqs_client(DirectoryConfig(region="eu-west-1"))
        args, kwargs = mock_boto3.client.call_args
        self.assertEqual(args[0], "sqs")
        self.assertEqual(kwargs["region_name"], "eu-west-1")
        self.assertNotIn("endpoint_url", kwargs)


class SerializationTests(unittest.TestCase):
    def test_serialize_string(self):
        self.assertEqual(_serialize("hello"), {"S": "hello"})

    def test_deserialize_item(self):
        item = {"name": {"S": "Acme"}, "count": {"N": "42"}}
        self.assertEqual(_deserialize(item), {"name": "Acme", "count": 42})

    def test_now_iso_format(self):
        self.assertRegex(_now_iso(), r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


class HttpUtilsTests(unittest.TestCase):
    def test_response_serializes_decimal(self):
        resp = _response(200, {"count": Decimal("3")})
        self.assertEqual(json.loads(resp["body"]), {"count": 3})
        self.assertEqual(resp["headers"]["Content-Type"], "application/json")

    def test_error_envelope(self):
        body = json.loads(_error(409, "taken", "CONFLICT")["body"])
        self.assertEqual(body, {"message": "taken", "error": "CONFLICT"})

    def test_json_body_rejects_non_object(self):
        with self.assertRaises(ValidationError):
            _json_body({"body": "[1, 2]"})
        with self.assertRaises(ValidationError):
            _json_body({"body": "{not json"})

    def test_json_body_base64(self):
        import base64

        raw = base64.b64encode(b'{"name": "Acme"}').decode()
        self.assertEqual(_json_body({"body": raw, "isBase64Encoded": True}), {"name": "Acme"})

    def test_json_body_bad_base64_is_validation_error(self):
        with self.assertRaises(ValidationError):
            _json_body({"body": "!!!not-base64", "isBase64Encoded": True})

    def test_json_body_non_utf8_is_validation_error(self):
        import base64

        raw = base64.b64encode(b"\xff\xfe").decode()
        with self.assertRaises(ValidationError):
            _json_body({"body": raw, "isBase64Encoded": True})

    def test_path_method(self):
        event = {"requestContext": {"http": {"method": "put"}}, "rawPath": "/organizations"}
        self.assertEqual(_path_method(event), ("PUT", "/organizations"))


class IntentTests(unittest.TestCase):
    def test_update_intent_carries_only_present_fields(self):
        intent = UpdateOrganization(org_id="o1", updated_at=T1, description="new")
        message = json.loads(to_message(intent))
        self.assertEqual(message["operation"], "updateOrganization")
        self.assertEqual(message["data"], {"orgId": "o1", "description": "new", "updatedAt": T1})

    def test_parse_restores_intent(self):
        intent = CreateUser(user_id="u1", org_id="o1", name="Ann", email="a@x.io", created_at=T0, updated_at=T0)
        self.assertEqual(parse_intent(to_message(intent)), intent)

    def test_parse_rejects_unknown_operation(self):
        with self.assertRaises(UnrecognizedIntentError):
            parse_intent(json.dumps({"operation": "deleteOrganization", "data": {"orgId": "o1"}}))

    def test_parse_rejects_malformed_bodies(self):
        for body in ("not-json", "[]", json.dumps({"operation": "createUser"})):
            with self.assertRaises(UnrecognizedIntentError):
                parse_intent(body)

    def test_parse_rejects_missing_required_field(self):
        body = json.dumps({"operation": "createOrganization", "data": {"orgId": "o1", "name": "Acme"}})
        with self.assertRaises(UnrecognizedIntentError):
            parse_intent(body)

    def test_parse_rejects_empty_update(self):
        body = json.dumps({"operation": "updateOrganization", "data": {"orgId": "o1", "updatedAt": T1}})
        with self.assertRaises(UnrecognizedIntentError):
            parse_intent(body)

    def test_parse_rejects_empty_user_update(self):
        body = json.dumps({"operation": "updateUser", "data": {"userId": "u1", "orgId": "o1", "updatedAt": T1}})
        with self.assertRaises(UnrecognizedIntentError):
            parse_intent(body)


class ValidationTests(unittest.TestCase):
    def test_organization_name_conflict(self):
        snapshot = [{"orgId": "o1", "name": "Acme"}]
        self.assertIs(validate_organization_name("Acme", snapshot), ValidationOutcome.CONFLICT)
        self.assertIs(validate_organization_name("Globex", snapshot), ValidationOutcome.OK)
        self.assertIs(validate_organization_name("Acme", []), ValidationOutcome.OK)

    def test_email_uniqueness_is_scoped_to_organization(self):
        snapshot = [{"userId": "u1", "orgId": "o1", "email": "a@x.io"}]
        self.assertIs(validate_user_email("o1", "a@x.io", None, snapshot), ValidationOutcome.CONFLICT)
        self.assertIs(validate_user_email("o2", "a@x.io", None, snapshot), ValidationOutcome.OK)

    def test_excluded_user_does_not_conflict_with_itself(self):
        snapshot = [{"userId": "u1", "orgId": "o1", "email": "a@x.io"}]
        self.assertIs(validate_user_email("o1", "a@x.io", "u1", snapshot), ValidationOutcome.OK)
        self.assertIs(validate_user_email("o1", "a@x.io", "u2", snapshot), ValidationOutcome.CONFLICT)


class RecordStoreTests(unittest.TestCase):
    def setUp(self):
        self.ddb = MagicMock()
        self.store = RecordStore(self.ddb, DirectoryConfig())

    def test_build_set_expression_uses_placeholders(self):
        expression, names, values = _build_set_expression({"name": "Acme", "updatedAt": T1})
        self.assertEqual(expression, "SET #name = :name, #updatedAt = :updatedAt")
        self.assertEqual(names, {"#name": "name", "#updatedAt": "updatedAt"})
        self.assertEqual(values[":name"], {"S": "Acme"})

    def test_get_organization_missing_returns_none(self):
        self.ddb.get_item.return_value = {}
        self.assertIsNone(self.store.get_organization("o1"))
        self.ddb.get_item.assert_called_once_with(TableName="Organizations", Key={"orgId": {"S": "o1"}})

    def test_update_organization_sets_fields(self):
        self.ddb.update_item.return_value = {"Attributes": {"orgId": {"S": "o1"}, "description": {"S": "d"}}}
        result = self.store.update_organization("o1", {"description": "d", "updatedAt": T1})
        kwargs = self.ddb.update_item.call_args.kwargs
        self.assertEqual(kwargs["TableName"], "Organizations")
        self.assertEqual(kwargs["UpdateExpression"], "SET #description = :description, #updatedAt = :updatedAt")
        self.assertEqual(result["description"], "d")

    def test_scan_paginates_and_filters_on_name(self):
        self.ddb.scan.side_effect = [
            {"Items": [{"orgId": {"S": "o1"}, "name": {"S": "Acme"}}], "LastEvaluatedKey": {"orgId": {"S": "o1"}}},
            {"Items": [{"orgId": {"S": "o2"}, "name": {"S": "Acme"}}]},
        ]
        items = self.store.scan_organizations(name="Acme")
        self.assertEqual([i["orgId"] for i in items], ["o1", "o2"])
        first, second = self.ddb.scan.call_args_list
        self.assertEqual(first.kwargs["FilterExpression"], "#name = :name")
        self.assertNotIn("ExclusiveStartKey", first.kwargs)
        self.assertEqual(second.kwargs["ExclusiveStartKey"], {"orgId": {"S": "o1"}})

    def test_query_users_uses_org_index(self):
        self.ddb.query.return_value = {"Items": []}
        self.store.query_users_by_organization("o1", email="a@x.io")
        kwargs = self.ddb.query.call_args.kwargs
        self.assertEqual(kwargs["IndexName"], "OrgId-index")
        self.assertEqual(kwargs["KeyConditionExpression"], "orgId = :orgId")
        self.assertEqual(kwargs["FilterExpression"], "email = :email")

    def test_client_error_becomes_transient_store_error(self):
        self.ddb.put_item.side_effect = _client_error("ProvisionedThroughputExceededException")
        with self.assertRaises(TransientStoreError):
            self.store.put_user({"userId": "u1", "orgId": "o1"})

    def test_connection_error_becomes_transient_store_error(self):
        self.ddb.get_item.side_effect = EndpointConnectionError(endpoint_url="http://localhost:8000")
        with self.assertRaises(TransientStoreError):
            self.store.get_user("u1")

    def test_ensure_tables_creates_missing_tables(self):
        self.ddb.describe_table.side_effect = [
            {"Table": {}},
            _client_error("ResourceNotFoundException", "DescribeTable"),
        ]
        created = self.store.ensure_tables()
        self.assertEqual(created, ["Users"])
        kwargs = self.ddb.create_table.call_args.kwargs
        self.assertEqual(kwargs["GlobalSecondaryIndexes"][0]["IndexName"], "OrgId-index")


class IntentQueueTests(unittest.TestCase):
    def setUp(self):
        self.sqs = MagicMock()
        self.queue = IntentQueue(self.sqs, DirectoryConfig(queue_url="https://sqs.local/q"))

    def test_publish_sends_message_with_operation_attribute(self):
        self.sqs.send_message.return_value = {"MessageId": "msg-1"}
        intent = UpdateOrganization(org_id="o1", updated_at=T1, name="Acme")
        self.assertEqual(self.queue.publish(intent), "msg-1")
        kwargs = self.sqs.send_message.call_args.kwargs
        self.assertEqual(kwargs["QueueUrl"], "https://sqs.local/q")
        self.assertEqual(kwargs["MessageAttributes"]["operation"]["StringValue"], "updateOrganization")
        self.assertEqual(parse_intent(kwargs["MessageBody"]), intent)

    def test_publish_failure_raises_transient_queue_error(self):
        self.sqs.send_message.side_effect = _client_error("AWS.SimpleQueueService.NonExistentQueue", "SendMessage")
        with self.assertRaises(TransientQueueError):
            self.queue.publish(UpdateOrganization(org_id="o1", updated_at=T1, name="Acme"))

    def test_publish_without_queue_url_fails(self):
        queue = IntentQueue(self.sqs, DirectoryConfig())
        with self.assertRaises(TransientQueueError):
            queue.publish(UpdateOrganization(org_id="o1", updated_at=T1, name="Acme"))
        self.sqs.send_message.assert_not_called()

    def test_receive_and_acknowledge(self):
        self.sqs.receive_message.return_value = {
            "Messages": [{"MessageId": "m1", "Body": "{}", "ReceiptHandle": "rh1"}]
        }
        messages = self.queue.receive(25)
        self.assertEqual(self.sqs.receive_message.call_args.kwargs["MaxNumberOfMessages"], 10)
        self.assertEqual(messages, [QueueMessage(message_id="m1", body="{}", receipt_handle="rh1")])
        self.queue.acknowledge(messages[0])
        self.sqs.delete_message.assert_called_once_with(QueueUrl="https://sqs.local/q", ReceiptHandle="rh1")


class ProducerTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryRecordStore()
        self.queue = InMemoryIntentQueue()
        self.store.organizations["o1"] = {
            "orgId": "o1", "name": "Acme", "description": "D", "createdAt": T0, "updatedAt": T0,
        }

    def _producer(self, *ids: str) -> MutationProducer:
        return MutationProducer(self.store, self.queue, clock=lambda: T1, id_factory=_id_seq(*ids))

    def test_create_organization_enqueues_intent_without_writing(self):
        result = self._producer("o2").submit_create_organization("Globex", "Second")
        self.assertEqual(result.org_id, "o2")
        self.assertEqual(result.operation, "createOrganization")
        self.assertNotIn("o2", self.store.organizations)
        intent = parse_intent(self.queue.bodies()[0])
        self.assertEqual(
            intent,
            CreateOrganization(org_id="o2", name="Globex", description="Second", created_at=T1, updated_at=T1),
        )

    def test_create_organization_requires_name_and_description(self):
        with self.assertRaises(ValidationError):
            self._producer().submit_create_organization("Globex", "  ")
        with self.assertRaises(ValidationError):
            self._producer().submit_create_organization(None, "D")
        self.assertEqual(self.queue.pending, [])

    def test_create_organization_name_conflict(self):
        with self.assertRaises(ConflictError):
            self._producer().submit_create_organization("Acme", "dup")
        self.assertEqual(self.queue.pending, [])

    def test_update_missing_organization_publishes_nothing(self):
        with self.assertRaises(NotFoundError):
            self._producer().submit_update_organization("missing-id", name="X")
        self.assertEqual(self.queue.pending, [])

    def test_update_organization_requires_a_field(self):
        with self.assertRaises(ValidationError):
            self._producer().submit_update_organization("o1")
        with self.assertRaises(ValidationError):
            self._producer().submit_update_organization(None, name="X")

    def test_update_organization_carries_only_changed_fields(self):
        self._producer().submit_update_organization("o1", description="Updated")
        intent = parse_intent(self.queue.bodies()[0])
        self.assertEqual(intent, UpdateOrganization(org_id="o1", updated_at=T1, description="Updated"))

    def test_create_user_generates_id(self):
        result = self._producer("u-new").submit_create_or_update_user("o1", None, "Ann", "a@x.io", is_update=False)
        self.assertEqual(result.user_id, "u-new")
        intent = parse_intent(self.queue.bodies()[0])
        self.assertIsInstance(intent, CreateUser)
        self.assertEqual(intent.email, "a@x.io")

    def test_create_user_keeps_client_supplied_id(self):
        result = self._producer().submit_create_or_update_user("o1", "client-id", "Ann", "a@x.io", is_update=False)
        self.assertEqual(result.user_id, "client-id")

    def test_create_user_in_missing_organization(self):
        with self.assertRaises(NotFoundError):
            self._producer("u1").submit_create_or_update_user("nope", None, "Ann", "a@x.io", is_update=False)

    def test_create_user_requires_fields(self):
        with self.assertRaises(ValidationError):
            self._producer("u1").submit_create_or_update_user("o1", None, "Ann", "", is_update=False)

    def test_email_conflict_within_organization(self):
        self.store.users["u1"] = {"userId": "u1", "orgId": "o1", "name": "Ann", "email": "a@x.io"}
        with self.assertRaises(ConflictError):
            self._producer("u2").submit_create_or_update_user("o1", None, "Bob", "a@x.io", is_update=False)

    def test_same_email_allowed_in_other_organization(self):
        self.store.organizations["o2"] = {"orgId": "o2", "name": "Globex"}
        self.store.users["u1"] = {"userId": "u1", "orgId": "o1", "name": "Ann", "email": "a@x.io"}
        result = self._producer("u2").submit_create_or_update_user("o2", None, "Ann", "a@x.io", is_update=False)
        self.assertEqual(result.org_id, "o2")

    def test_update_user_may_keep_own_email(self):
        self.store.users["u1"] = {"userId": "u1", "orgId": "o1", "name": "Ann", "email": "a@x.io"}
        self._producer().submit_create_or_update_user("o1", "u1", "Ann B", "a@x.io", is_update=True)
        intent = parse_intent(self.queue.bodies()[0])
        self.assertEqual(intent, UpdateUser(user_id="u1", org_id="o1", updated_at=T1, name="Ann B", email="a@x.io"))

    def test_update_user_requires_user_id(self):
        with self.assertRaises(ValidationError):
            self._producer().submit_create_or_update_user("o1", None, "Ann", "a@x.io", is_update=True)

    def test_update_user_from_other_organization_is_not_found(self):
        self.store.organizations["o2"] = {"orgId": "o2", "name": "Globex"}
        self.store.users["u1"] = {"userId": "u1", "orgId": "o2", "name": "Ann", "email": "a@x.io"}
        with self.assertRaises(NotFoundError):
            self._producer().submit_create_or_update_user("o1", "u1", "Ann", "a@x.io", is_update=True)

    def test_non_string_field_rejected(self):
        with self.assertRaises(ValidationError):
            self._producer("o2").submit_create_organization(42, "D")


class ConsumerTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryRecordStore()
        self.consumer = IntentConsumer(self.store)

    def test_create_organization_is_idempotent(self):
        intent = CreateOrganization(org_id="o1", name="Acme", description="D", created_at=T0, updated_at=T0)
        self.consumer.apply(intent)
        once = self.store.get_organization("o1")
        self.consumer.apply(intent)
        self.assertEqual(self.store.get_organization("o1"), once)
        self.assertEqual(once, intent.to_item())

    def test_create_user_is_idempotent(self):
        intent = CreateUser(user_id="u1", org_id="o1", name="Ann", email="a@x.io", created_at=T0, updated_at=T0)
        self.consumer.apply(intent)
        self.consumer.apply(intent)
        self.assertEqual(list(self.store.users.values()), [intent.to_item()])

    def test_update_is_idempotent_and_uses_intent_timestamp(self):
        self.consumer.apply(CreateOrganization(org_id="o1", name="Acme", description="D", created_at=T0, updated_at=T0))
        update = UpdateOrganization(org_id="o1", updated_at=T1, description="New")
        self.consumer.apply(update)
        once = self.store.get_organization("o1")
        self.consumer.apply(update)
        self.assertEqual(self.store.get_organization("o1"), once)
        self.assertEqual(once["updatedAt"], T1)

    def test_partial_update_keeps_name(self):
        self.consumer.apply(CreateOrganization(org_id="o1", name="Acme", description="D", created_at=T0, updated_at=T0))
        self.consumer.apply(UpdateOrganization(org_id="o1", updated_at=T1, description="New"))
        org = self.store.get_organization("o1")
        self.assertEqual(org["name"], "Acme")
        self.assertEqual(org["description"], "New")
        self.assertEqual(org["createdAt"], T0)
        self.assertEqual(org["updatedAt"], T1)

    def test_update_user_redelivery_reproduces_state(self):
        self.consumer.apply(CreateUser(user_id="u1", org_id="o1", name="Ann", email="a@x.io", created_at=T0, updated_at=T0))
        update = UpdateUser(user_id="u1", org_id="o1", updated_at=T1, name="Ann B", email="b@x.io")
        self.consumer.apply(update)
        self.consumer.apply(update)
        user = self.store.get_user("u1")
        self.assertEqual((user["name"], user["email"], user["updatedAt"]), ("Ann B", "b@x.io", T1))

    def test_unknown_operation_is_skipped_without_aborting_batch(self):
        first = CreateOrganization(org_id="o1", name="Acme", description="D", created_at=T0, updated_at=T0)
        last = CreateOrganization(org_id="o2", name="Globex", description="D", created_at=T0, updated_at=T0)
        messages = [
            _message(first, "m-1"),
            QueueMessage(message_id="m-2", body=json.dumps({"operation": "deleteEverything", "data": {}})),
            _message(last, "m-3"),
        ]
        done = []
        result = self.consumer.process_messages(messages, on_done=lambda m: done.append(m.message_id))
        self.assertEqual(result.applied, ["m-1", "m-3"])
        self.assertEqual(result.skipped, ["m-2"])
        self.assertEqual(done, ["m-1", "m-2", "m-3"])
        self.assertEqual(set(self.store.organizations), {"o1", "o2"})

    def test_store_failure_aborts_batch_without_rollback(self):
        org = CreateOrganization(org_id="o1", name="Acme", description="D", created_at=T0, updated_at=T0)
        user = CreateUser(user_id="u1", org_id="o1", name="Ann", email="a@x.io", created_at=T0, updated_at=T0)
        later = CreateOrganization(org_id="o2", name="Globex", description="D", created_at=T0, updated_at=T0)
        done = []
        with patch.object(self.store, "put_user", side_effect=TransientStoreError("throttled")):
            with self.assertRaises(TransientStoreError):
                self.consumer.process_messages(
                    [_message(org, "m-1"), _message(user, "m-2"), _message(later, "m-3")],
                    on_done=lambda m: done.append(m.message_id),
                )
        self.assertIn("o1", self.store.organizations)
        self.assertNotIn("o2", self.store.organizations)
        self.assertEqual(done, ["m-1"])

    def test_redelivered_batch_converges(self):
        org = CreateOrganization(org_id="o1", name="Acme", description="D", created_at=T0, updated_at=T0)
        update = UpdateOrganization(org_id="o1", updated_at=T1, name="Acme Corp")
        batch = [_message(org, "m-1"), _message(update, "m-2")]
        self.consumer.process_messages(batch)
        first = self.store.get_organization("o1")
        self.consumer.process_messages(batch)
        self.assertEqual(self.store.get_organization("o1"), first)


class QueryServiceTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryRecordStore()
        self.store.organizations["o1"] = {"orgId": "o1", "name": "Acme"}
        self.store.organizations["o2"] = {"orgId": "o2", "name": "Globex"}
        self.store.users["u1"] = {"userId": "u1", "orgId": "o1", "email": "a@x.io"}
        self.store.users["u2"] = {"userId": "u2", "orgId": "o2", "email": "b@x.io"}
        self.query = QueryService(self.store)

    def test_get_organization(self):
        self.assertEqual(self.query.get_organization("o1")["name"], "Acme")
        with self.assertRaises(NotFoundError):
            self.query.get_organization("missing")

    def test_get_all_organizations(self):
        self.assertEqual(len(self.query.get_all_organizations()), 2)

    def test_get_user_checks_organization_scope(self):
        self.assertEqual(self.query.get_user("o1", "u1")["email"], "a@x.io")
        with self.assertRaises(NotFoundError):
            self.query.get_user("o1", "u2")

    def test_users_by_organization(self):
        self.assertEqual([u["userId"] for u in self.query.get_all_users_by_organization("o2")], ["u2"])
        with self.assertRaises(NotFoundError):
            self.query.get_all_users_by_organization("missing")


class RaceTests(unittest.TestCase):
    """Snapshot validation cannot stop two concurrent creates with one email."""

    def test_concurrent_duplicate_email_both_applied(self):
        store = InMemoryRecordStore()
        store.organizations["o1"] = {"orgId": "o1", "name": "Acme"}
        queue = InMemoryIntentQueue()
        producer_a = MutationProducer(store, queue, clock=_fixed_clock(T0), id_factory=_id_seq("u-a"))
        producer_b = MutationProducer(store, queue, clock=_fixed_clock(T0), id_factory=_id_seq("u-b"))

        producer_a.submit_create_or_update_user("o1", None, "Ann", "same@x.io", is_update=False)
        producer_b.submit_create_or_update_user("o1", None, "Ann", "same@x.io", is_update=False)

        IntentConsumer(store).process_messages(queue.receive())
        users = store.query_users_by_organization("o1", email="same@x.io")
        self.assertEqual(sorted(u["userId"] for u in users), ["u-a", "u-b"])


if __name__ == "__main__":
    unittest.main()
