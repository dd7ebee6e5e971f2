"""Tests for notification intake: body parsing, per-element validation, clientState, saturation."""

import json
import sys
import unittest
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.relay.client_state import ClientStateRegistry
from src.relay.dispatch import DispatchQueue
from src.relay.errors import MalformedNotification
from src.relay.intake import NotificationIntake, parse_body, validate_element
from src.relay.models import ChangeType, NotificationBatch
from tests.helpers import make_element


def _body(*elements) -> bytes:
    return json.dumps({"value": list(elements)}).encode("utf-8")


class TestParseBody(unittest.TestCase):
    """Anything that is not a JSON object with a 'value' list is an empty batch."""

    def test_value_array(self):
        batch = parse_body(_body(make_element(), make_element(resource="me/events/BBB")))
        self.assertEqual(len(batch), 2)

    def test_empty_and_whitespace(self):
        self.assertEqual(len(parse_body(b"")), 0)
        self.assertEqual(len(parse_body(b"   \n")), 0)

    def test_invalid_json(self):
        self.assertEqual(len(parse_body(b"{not json")), 0)

    def test_missing_value(self):
        self.assertEqual(len(parse_body(b'{"foo": 1}')), 0)

    def test_value_not_list(self):
        self.assertEqual(len(parse_body(b'{"value": {"subscriptionId": "x"}}')), 0)

    def test_non_object_body(self):
        self.assertEqual(len(parse_body(b"[1, 2, 3]")), 0)
        self.assertEqual(len(parse_body(b'"text"')), 0)


class TestValidateElement(unittest.TestCase):

    def test_well_formed(self):
        n = validate_element(make_element(resourceData={"id": "AAA", "@odata.type": "#Microsoft.Graph.Event"}), 0)
        self.assertEqual(n.subscription_id, "sub1")
        self.assertIs(n.change_type, ChangeType.CREATED)
        self.assertEqual(n.resource, "me/events/AAA")
        self.assertEqual(n.resource_data["id"], "AAA")
        self.assertEqual(n.client_state, "secret")

    def test_missing_required_fields(self):
        for field in ("subscriptionId", "changeType", "resource"):
            element = make_element()
            del element[field]
            with self.assertRaises(MalformedNotification) as ctx:
                validate_element(element, 3)
            self.assertEqual(ctx.exception.index, 3)
            self.assertIn(field, ctx.exception.reason)

    def test_unknown_change_type(self):
        with self.assertRaises(MalformedNotification):
            validate_element(make_element(change_type="moved"), 0)

    def test_not_an_object(self):
        with self.assertRaises(MalformedNotification):
            validate_element("sub1", 0)
        with self.assertRaises(MalformedNotification):
            validate_element(None, 0)

    def test_empty_resource(self):
        with self.assertRaises(MalformedNotification):
            validate_element(make_element(resource=""), 0)

    def test_notification_is_immutable(self):
        n = validate_element(make_element(), 0)
        with self.assertRaises(Exception):
            n.resource = "me/events/ZZZ"

    def test_resource_data_is_opaque(self):
        for payload in ("opaque-string", ["a", "b"], 42, None):
            n = validate_element(make_element(resourceData=payload), 0)
            self.assertEqual(n.resource_data, payload)

    def test_received_at_set_on_arrival_not_by_sender(self):
        before = datetime.now(timezone.utc)
        n = validate_element(make_element(received_at="1999-01-01T00:00:00Z"), 0)
        self.assertGreaterEqual(n.received_at, before)

    def test_invalid_received_at_does_not_make_element_malformed(self):
        n = validate_element(make_element(received_at="garbage"), 0)
        self.assertEqual(n.resource, "me/events/AAA")

    def test_python_field_names_are_not_accepted(self):
        element = {
            "subscription_id": "sub1",
            "change_type": "created",
            "resource": "me/events/AAA",
            "client_state": "secret",
        }
        with self.assertRaises(MalformedNotification) as ctx:
            validate_element(element, 0)
        self.assertIn("subscriptionId", ctx.exception.reason)
        self.assertIn("changeType", ctx.exception.reason)


class TestNotificationIntake(unittest.TestCase):

    def _intake(self, maxsize: int = 10, default: str | None = "secret", per_subscription=None):
        queue = DispatchQueue(maxsize=maxsize, worker_count=1)
        registry = ClientStateRegistry(default=default, per_subscription=per_subscription)
        return NotificationIntake(queue, registry), queue

    def _drain(self, queue: DispatchQueue) -> list:
        items = []
        while queue.qsize():
            items.append(queue._queue.get_nowait())
        return items

    def test_accepted_elements_enqueued_in_order(self):
        intake, queue = self._intake()
        batch = NotificationBatch(value=[make_element(resource=f"me/events/{i}") for i in range(4)])
        report = intake.process(batch)
        self.assertEqual(report.accepted, 4)
        self.assertEqual([n.resource for n in self._drain(queue)], [f"me/events/{i}" for i in range(4)])

    def test_mixed_batch_drops_only_bad_elements(self):
        intake, queue = self._intake()
        batch = NotificationBatch(
            value=[
                make_element(resource="me/events/good1"),
                {"changeType": "created"},
                "garbage",
                make_element(resource="me/events/spoof", client_state="wrong"),
                make_element(resource="me/events/good2", change_type="deleted"),
            ]
        )
        report = intake.process(batch)
        self.assertEqual(report.received, 5)
        self.assertEqual(report.accepted, 2)
        self.assertEqual(report.malformed, 2)
        self.assertEqual(report.rejected, 1)
        self.assertEqual([n.resource for n in self._drain(queue)], ["me/events/good1", "me/events/good2"])

    def test_missing_client_state_rejected_when_expected(self):
        intake, queue = self._intake()
        report = intake.process(NotificationBatch(value=[make_element(client_state=None)]))
        self.assertEqual(report.rejected, 1)
        self.assertEqual(queue.qsize(), 0)

    def test_no_secret_configured_accepts_any_client_state(self):
        intake, queue = self._intake(default=None)
        report = intake.process(
            NotificationBatch(value=[make_element(client_state=None), make_element(client_state="anything")])
        )
        self.assertEqual(report.accepted, 2)

    def test_per_subscription_secret(self):
        intake, queue = self._intake(default=None, per_subscription={"sub2": "s2"})
        report = intake.process(
            NotificationBatch(
                value=[
                    make_element(subscription_id="sub2", client_state="s2"),
                    make_element(subscription_id="sub2", client_state="secret"),
                    make_element(subscription_id="sub1", client_state=None),
                ]
            )
        )
        self.assertEqual(report.accepted, 2)
        self.assertEqual(report.rejected, 1)

    def test_full_queue_drops_newest(self):
        intake, queue = self._intake(maxsize=2)
        batch = NotificationBatch(value=[make_element(resource=f"me/events/{i}") for i in range(5)])
        report = intake.process(batch)
        self.assertEqual(report.accepted, 2)
        self.assertEqual(report.saturated, 3)
        self.assertEqual([n.resource for n in self._drain(queue)], ["me/events/0", "me/events/1"])

    def test_non_object_resource_data_accepted(self):
        intake, queue = self._intake()
        report = intake.process(
            NotificationBatch(
                value=[
                    make_element(resource="me/events/1", resourceData="opaque-string"),
                    make_element(resource="me/events/2", resourceData=["a", "b"]),
                ]
            )
        )
        self.assertEqual(report.accepted, 2)
        self.assertEqual(report.malformed, 0)
        self.assertEqual([n.resource_data for n in self._drain(queue)], ["opaque-string", ["a", "b"]])

    def test_stats_recorded(self):
        intake, queue = self._intake(maxsize=1)
        intake.process(
            NotificationBatch(
                value=[make_element(), make_element(resource="me/events/2"), {}, make_element(client_state="x")]
            )
        )
        intake.process(NotificationBatch(value=[]))
        snap = queue.stats.snapshot()
        self.assertEqual(snap["batches"], 2)
        self.assertEqual(snap["received"], 4)
        self.assertEqual(snap["accepted"], 1)
        self.assertEqual(snap["saturated"], 1)
        self.assertEqual(snap["malformed"], 1)
        self.assertEqual(snap["rejected"], 1)


if __name__ == "__main__":
    unittest.main()
