# custody/tests/test_write_guardrails.py

from django.contrib.auth.models import User
from django.core.exceptions import PermissionDenied
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from custody.models import (
    Analysis,
    AnalysisType,
    QREvent,
    Requirement,
    Sample,
    WorkflowTransition,
)


class WriteGuardrailTests(TestCase):
    """
    Server-controlled fields cannot be mutated outside the workflow
    engine, either at the model layer (PermissionDenied) or through the
    API (ignored or rejected).
    """

    def setUp(self):
        self.client = APIClient()

        self.user = User.objects.create_user(
            username="labuser",
            email="labuser@example.com",
            password="pass",
        )
        self.client.force_authenticate(user=self.user)

        self.requirement = Requirement.objects.create(
            code="REQ-2026-000001",
            requester=self.user,
            sample_type="Soil",
        )

        self.sample = Sample.objects.create(
            qr_code="QR-2026-000001",
            requirement=self.requirement,
            sample_type="Soil",
        )

        self.analysis = Analysis.objects.create(
            sample=self.sample,
            analysis_type=AnalysisType.objects.create(name="Nitrogen"),
        )

    # ---------------------------------------------------------
    # MODEL GUARD
    # ---------------------------------------------------------
    def test_direct_status_save_is_rejected(self):
        for obj, target in (
            (self.requirement, "SUBMITTED"),
            (self.sample, "RECEIVED"),
            (self.analysis, "IN_PROGRESS"),
        ):
            with self.subTest(model=obj.__class__.__name__):
                obj.status = target
                with self.assertRaises(PermissionDenied):
                    obj.save()

                obj.refresh_from_db()
                self.assertNotEqual(obj.status, target)

    def test_rejection_names_model_and_states(self):
        self.sample.status = "STORED"

        with self.assertRaises(PermissionDenied) as ctx:
            self.sample.save()

        self.assertIn("Sample status EXPECTED -> STORED", str(ctx.exception))

    def test_bypass_allows_status_write(self):
        self.sample.status = "RECEIVED"
        self.sample.save(update_fields=["status"], _workflow_bypass=True)

        self.sample.refresh_from_db()
        self.assertEqual(self.sample.status, "RECEIVED")

    def test_non_status_fields_save_normally(self):
        self.sample.notes = "Labelled twice"
        self.sample.save()

        self.sample.refresh_from_db()
        self.assertEqual(self.sample.notes, "Labelled twice")

    def test_qr_events_cannot_be_deleted(self):
        event = QREvent.objects.create(sample=self.sample, event_type="RECEIVED", actor=self.user)

        with self.assertRaises(PermissionDenied):
            event.delete()
        self.assertTrue(QREvent.objects.filter(pk=event.pk).exists())

    # ---------------------------------------------------------
    # API GUARDRAILS
    # ---------------------------------------------------------
    def test_requirement_code_cannot_be_changed(self):
        resp = self.client.patch(
            f"/lims/requirements/{self.requirement.id}/",
            {"code": "REQ-2026-999999", "description": "Updated"},
            format="json",
        )

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.requirement.refresh_from_db()
        self.assertEqual(self.requirement.code, "REQ-2026-000001")
        self.assertEqual(self.requirement.description, "Updated")

    def test_requirement_requester_cannot_be_changed(self):
        other_user = User.objects.create_user(username="other", password="pass")

        self.client.patch(
            f"/lims/requirements/{self.requirement.id}/",
            {"requester_id": other_user.id},
            format="json",
        )

        self.requirement.refresh_from_db()
        self.assertEqual(self.requirement.requester_id, self.user.id)

    def test_sample_requirement_cannot_be_changed(self):
        other = Requirement.objects.create(
            code="REQ-2026-000002",
            requester=self.user,
            sample_type="Water",
        )

        self.client.patch(
            f"/lims/samples/{self.sample.id}/",
            {"requirement_id": other.id, "qr_code": "QR-2026-777777"},
            format="json",
        )

        self.sample.refresh_from_db()
        self.assertEqual(self.sample.requirement_id, self.requirement.id)
        self.assertEqual(self.sample.qr_code, "QR-2026-000001")

    def test_sample_status_patch_goes_through_engine(self):
        resp = self.client.patch(
            f"/lims/samples/{self.sample.id}/",
            {"status": "STORED"},
            format="json",
        )

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data["current"], "EXPECTED")
        self.assertFalse(WorkflowTransition.objects.exists())

    def test_analysis_timestamps_only_via_transition(self):
        resp = self.client.patch(
            f"/lims/analyses/{self.analysis.id}/",
            {"status": "IN_PROGRESS"},
            format="json",
        )

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertIsNotNone(resp.data["started_at"])
        self.assertEqual(
            WorkflowTransition.objects.filter(kind="analysis", object_id=self.analysis.id).count(),
            1,
        )
