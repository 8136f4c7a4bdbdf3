import base64
import json
from datetime import datetime, timezone
from unittest import TestCase
from urllib.parse import quote

from pickup_svc.core import qr
from pickup_svc.core.errors import InvalidTokenFormat
from pickup_svc.schemas import TokenPayload


def _payload(**overrides) -> TokenPayload:
    fields = {
        "user_id": "u1",
        "student_id": "s1",
        "school_id": "school-1",
        "timestamp": "2025-03-10T14:30:00.000Z",
        "auth_token": "tok",
        "version": "1.0",
    }
    fields.update(overrides)
    return TokenPayload(**fields)


class TimestampTests(TestCase):
    def test_format_uses_millis_and_z_suffix(self):
        dt = datetime(2025, 3, 10, 14, 30, 5, 123456, tzinfo=timezone.utc)
        self.assertEqual(qr.format_timestamp(dt), "2025-03-10T14:30:05.123Z")

    def test_parse_accepts_z_suffix(self):
        dt = qr.parse_timestamp("2025-03-10T14:30:05.123Z")
        self.assertEqual(dt, datetime(2025, 3, 10, 14, 30, 5, 123000, tzinfo=timezone.utc))


class PayloadCodecTests(TestCase):
    def test_encoded_payload_is_compact_camelcase_json(self):
        blob = qr.encode_payload(_payload())
        raw = base64.b64decode(blob).decode("utf-8")
        self.assertEqual(
            raw,
            '{"userId":"u1","studentId":"s1","schoolId":"school-1",'
            '"timestamp":"2025-03-10T14:30:00.000Z","authToken":"tok","version":"1.0"}',
        )

    def test_deep_link_percent_encodes_base64(self):
        link = qr.build_deep_link("geofenceschool", "ab+/cd==")
        self.assertEqual(link, "geofenceschool://validator?token=ab%2B%2Fcd%3D%3D")

    def test_extract_from_deep_link(self):
        blob = qr.encode_payload(_payload())
        link = qr.build_deep_link("geofenceschool", blob)
        self.assertEqual(qr.extract_token_data(link, "geofenceschool"), blob)

    def test_extract_raw_base64_passthrough(self):
        blob = qr.encode_payload(_payload())
        self.assertEqual(qr.extract_token_data(f"  {blob}\n", "geofenceschool"), blob)

    def test_extract_falls_back_to_regex_when_url_parse_fails(self):
        blob = qr.encode_payload(_payload())
        broken = f"geofenceschool://[validator?token={quote(blob, safe='')}&x=1"
        self.assertEqual(qr.extract_token_data(broken, "geofenceschool"), blob)

    def test_extract_restores_plus_from_unescaped_link(self):
        link = "https://example.org/validator?token=ab+cd=="
        self.assertEqual(qr.extract_token_data(link, "geofenceschool"), "ab+cd==")

    def test_decode_round_trip(self):
        payload = _payload(student_id="student-é")
        self.assertEqual(qr.decode_payload(qr.encode_payload(payload)), payload)

    def test_decode_rejects_garbage(self):
        for junk in ("not base64 !!", base64.b64encode(b"not json").decode(), base64.b64encode(b"[1,2]").decode()):
            with self.assertRaises(InvalidTokenFormat):
                qr.decode_payload(junk)

    def test_decode_rejects_missing_fields(self):
        blob = base64.b64encode(json.dumps({"userId": "u1"}).encode()).decode()
        with self.assertRaises(InvalidTokenFormat):
            qr.decode_payload(blob)

    def test_decode_rejects_bad_timestamp(self):
        with self.assertRaises(InvalidTokenFormat):
            qr.decode_payload(qr.encode_payload(_payload(timestamp="yesterday")))

    def test_credential_digest_is_stable(self):
        self.assertEqual(qr.credential_digest("abc"), qr.credential_digest("abc"))
        self.assertNotEqual(qr.credential_digest("abc"), qr.credential_digest("abd"))

    def test_render_png(self):
        png = qr.render_png("geofenceschool://validator?token=abc")
        self.assertTrue(png.startswith(b"\x89PNG"))
