from __future__ import annotations

import unittest

from app.domain.canonical_record import FieldSeverity
from app.errors import FieldNormalizationError
from app.services.field_normalizer import FieldNormalizer


class TestFieldNormalizer(unittest.TestCase):
    def setUp(self) -> None:
        self.normalizer = FieldNormalizer()

    def test_hebrew_payment_rows_end_to_end(self) -> None:
        headers = ["שם", "סכום", "תאריך תשלום"]
        values = [["דני", 1200, "01/03/2024"], ["", 800, "15/3/24"], ["רותי", "abc", "2024-04-01"]]
        rows = [dict(zip(headers, row)) for row in values]

        first, first_errors = self.normalizer.normalize(rows[0], "Payment", row_number=1)
        second, second_errors = self.normalizer.normalize(rows[1], "Payment", row_number=2)
        third, third_errors = self.normalizer.normalize(rows[2], "Payment", row_number=3)

        self.assertEqual(first_errors, [])
        self.assertEqual(
            dict(first.fields),
            {
                "full_name": "דני",
                "amount": 1200.0,
                "payment_date": "2024-03-01",
                "payment_type": "other",
                "payment_method": "bank_transfer",
                "status": "pending",
            },
        )

        self.assertEqual(len(second_errors), 1)
        self.assertEqual(second_errors[0].row_number, 2)
        self.assertEqual(second_errors[0].column, "full_name")
        self.assertTrue(second_errors[0].is_error)
        self.assertEqual(second.get("amount"), 800.0)
        self.assertEqual(second.get("payment_date"), "2024-03-15")

        self.assertEqual([error.column for error in third_errors], ["amount"])
        self.assertEqual(third_errors[0].row_number, 3)
        self.assertIsNone(third.get("amount"))
        self.assertEqual(third.get("payment_date"), "2024-04-01")

    def test_required_field_error_carries_row_number(self) -> None:
        _, errors = self.normalizer.normalize({"phone": "050-1234567"}, "Tenant", row_number=7)

        self.assertEqual([(error.row_number, error.column) for error in errors], [(7, "full_name")])
        self.assertEqual(errors[0].message, "Missing full_name value")

    def test_payment_accepts_tenant_id_instead_of_name(self) -> None:
        record, errors = self.normalizer.normalize(
            {"tenant_id": 4512.0, "amount": "950", "date": "2024-02-01"},
            "Payment",
        )

        self.assertEqual(errors, [])
        self.assertEqual(record.get("tenant_id"), "4512")

    def test_enumerations_are_translated(self) -> None:
        record, _ = self.normalizer.normalize(
            {
                "שם": "דני",
                "סכום": "₪1,200",
                "תאריך": "2024-01-05",
                "סוג תשלום": "חשמל",
                "אמצעי תשלום": "ביט",
                "סטטוס": "שולם",
            },
            "payments",
        )

        self.assertEqual(record.entity_type, "Payment")
        self.assertEqual(record.get("payment_type"), "electricity")
        self.assertEqual(record.get("payment_method"), "bit")
        self.assertEqual(record.get("status"), "paid")
        self.assertEqual(record.get("amount"), 1200.0)

    def test_unknown_labels_pass_through_lowercased(self) -> None:
        record, _ = self.normalizer.normalize({"name": "Dana", "status": "On Hold"}, "Tenant")

        self.assertEqual(record.get("status"), "on hold")

    def test_unknown_entity_type_uses_generic_profile(self) -> None:
        record, errors = self.normalizer.normalize({"name": "Dana", "units": "12"}, "Contract")

        self.assertEqual(errors, [])
        self.assertEqual(record.entity_type, "Contract")
        self.assertEqual(record.get("full_name"), "Dana")
        self.assertEqual(record.get("total_units"), 12)
        self.assertEqual(record.get("status"), "active")

    def test_content_detection_maps_unlabelled_columns(self) -> None:
        record, errors = self.normalizer.normalize(
            {
                "שם": "Dana",
                "col_a": "dana@Example.com",
                "col_b": "050-123-4567",
                "col_c": "15/03/2024",
                "col_d": "123456789",
            },
            "Tenant",
        )

        self.assertEqual(errors, [])
        self.assertEqual(record.get("email"), "dana@example.com")
        self.assertEqual(record.get("phone"), "0501234567")
        self.assertEqual(record.get("lease_start"), "2024-03-15")
        self.assertEqual(dict(record.extras), {"col_d": "123456789"})

    def test_unmapped_columns_are_preserved_as_extras(self) -> None:
        record, _ = self.normalizer.normalize(
            {"שם": "דני", "סכום": 10, "תאריך": "2024-01-01", "קומה": "3", "ריק": ""},
            "Payment",
        )

        self.assertEqual(dict(record.extras), {"קומה": "3"})
        self.assertEqual(record.content()["קומה"], "3")

    def test_malformed_date_passes_through_with_warning(self) -> None:
        record, errors = self.normalizer.normalize(
            {"שם": "דני", "סכום": 10, "תאריך תשלום": "32/13/2024"},
            "Payment",
            row_number=4,
        )

        self.assertEqual(record.get("payment_date"), "32/13/2024")
        self.assertEqual(len(errors), 1)
        self.assertEqual(errors[0].severity, FieldSeverity.WARNING)
        self.assertEqual(errors[0].row_number, 4)

    def test_normalize_valid_raises_only_for_blocking_errors(self) -> None:
        record, warnings = self.normalizer.normalize_valid(
            {"שם": "דני", "סכום": 10, "תאריך תשלום": "32/13/2024"},
            "Payment",
            row_number=4,
        )
        self.assertEqual(record.get("full_name"), "דני")
        self.assertEqual([warning.severity for warning in warnings], [FieldSeverity.WARNING])

        with self.assertRaises(FieldNormalizationError) as context:
            self.normalizer.normalize_valid(
                {"שם": "", "סכום": 10, "תאריך תשלום": "01/03/2024"},
                "Payment",
                row_number=7,
            )

        self.assertEqual(context.exception.row_number, 7)
        self.assertEqual([error.column for error in context.exception.errors], ["full_name"])
        self.assertIn("full_name", str(context.exception))

    def test_normalization_is_idempotent_on_its_own_output(self) -> None:
        raw = {
            "שם": "דני",
            "סכום": "1,200.50",
            "תאריך תשלום": "1/3/24",
            "אמצעי תשלום": "מזומן",
            "הערה פנימית": "x",
        }
        first, _ = self.normalizer.normalize(raw, "Payment")
        second, errors = self.normalizer.normalize(first.content(), "Payment")

        self.assertEqual(errors, [])
        self.assertEqual(dict(second.fields), dict(first.fields))
        self.assertEqual(dict(second.extras), dict(first.extras))

    def test_record_fields_are_read_only(self) -> None:
        record, _ = self.normalizer.normalize({"name": "Dana"}, "Tenant")

        with self.assertRaises(TypeError):
            record.fields["full_name"] = "Other"  # type: ignore[index]


if __name__ == "__main__":
    unittest.main()
