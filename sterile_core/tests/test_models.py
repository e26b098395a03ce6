# sterile_core/tests/test_models.py

from django.test import TestCase

from sterile_core.exceptions import Forbidden
from sterile_core.models import AuditRecord, InstrumentGroup, Item
from sterile_core.workflows import Action, Location, Status


class WorkflowWriteGuardTests(TestCase):
    """
    Location and status belong to the engines; direct saves that touch
    them are refused, other fields stay editable.
    """

    def setUp(self):
        self.item = Item.objects.create(
            id="123456-001-00001",
            company_prefix="123456",
            type_code="001",
            serial_number=1,
            name="Surgical Scissors",
        )
        self.group = InstrumentGroup.objects.create(name="G1")

    def test_direct_status_change_is_forbidden(self):
        self.item.status = Status.FINISHED
        with self.assertRaises(Forbidden):
            self.item.save()

        self.item.refresh_from_db()
        self.assertEqual(self.item.status, Status.NOT_STERILIZED)

    def test_direct_location_change_is_forbidden(self):
        self.item.location = Location.STORAGE
        with self.assertRaises(Forbidden):
            self.item.save()

        self.group.location = Location.STORAGE
        with self.assertRaises(Forbidden):
            self.group.save()

    def test_other_fields_remain_editable(self):
        self.item.name = "Curved Scissors"
        self.item.save()

        self.group.name = "Tray 7"
        self.group.save()

        self.item.refresh_from_db()
        self.assertEqual(self.item.name, "Curved Scissors")

    def test_bypass_for_data_fixes(self):
        self.item.location = Location.STORAGE
        self.item.save(_workflow_bypass=True)

        self.item.refresh_from_db()
        self.assertEqual(self.item.location, Location.STORAGE)


class AuditRecordImmutabilityTests(TestCase):
    def setUp(self):
        self.record = AuditRecord.objects.create(
            subject_id="123456-001-00001",
            action=Action.REGISTERED,
            to_location=Location.MSU,
            actor_id="1",
        )

    def test_update_is_forbidden(self):
        self.record.details = {"edited": True}
        with self.assertRaises(Forbidden):
            self.record.save()

    def test_delete_is_forbidden(self):
        with self.assertRaises(Forbidden):
            self.record.delete()
        self.assertTrue(AuditRecord.objects.filter(pk=self.record.pk).exists())

    def test_str(self):
        self.assertIn("registered", str(self.record))
        self.assertIn("msu", str(self.record))
