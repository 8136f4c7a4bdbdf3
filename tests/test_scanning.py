from unittest import TestCase

from pickup_svc.core.qr import render_png
from pickup_svc.services.scanning import (
    CameraScanInput, ScanUnavailable, TextScanInput, select_scan_input,
)


class ScanInputTests(TestCase):
    def test_select(self):
        self.assertIsInstance(select_scan_input("text"), TextScanInput)
        self.assertIsInstance(select_scan_input("camera"), CameraScanInput)
        with self.assertRaises(ValueError):
            select_scan_input("laser")

    def test_text_input_strips(self):
        self.assertEqual(TextScanInput().read_text("  geofenceschool://validator?token=abc\n"),
                         "geofenceschool://validator?token=abc")

    def test_text_input_has_no_camera(self):
        scan = TextScanInput()
        self.assertFalse(scan.accepts_images)
        with self.assertRaises(ScanUnavailable):
            scan.read_image(b"\x89PNG")

    def test_camera_decodes_rendered_code(self):
        link = "geofenceschool://validator?token=eyJ1c2VySWQiOiJ1MSJ9"
        self.assertEqual(CameraScanInput().read_image(render_png(link)), link)

    def test_camera_rejects_non_images(self):
        with self.assertRaises(ValueError):
            CameraScanInput().read_image(b"definitely not an image")
