import json
import time
import unittest
from unittest.mock import MagicMock

from app import create_app
from generation import ExamGenerator
from rate_limiter import FixedWindowRateLimiter

from fakes import EXAM_RESULT, FakeStatusError, response_with, wrapped_reply

VALID = {
    "level": "AA HL",
    "paperType": "Paper 1 (No Calculator)",
    "difficulty": "Standard",
    "topics": ["Differentiation"],
    "numQuestions": 3,
    "totalMarks": 20,
}


class AppTestCase(unittest.TestCase):
    def setUp(self):
        self.openai = MagicMock()
        self.openai.responses.create.return_value = response_with(wrapped_reply())
        self.limiter = FixedWindowRateLimiter(limit=20, window=3600)
        self.flask_app = create_app(
            generator=ExamGenerator(self.openai, model="gpt-test"),
            rate_limiter=self.limiter,
        )
        self.flask_app.testing = True
        self.app = self.flask_app.test_client()

    def post_generate(self, body, ip="10.0.0.1"):
        return self.app.post(
            "/api/generate",
            data=body if isinstance(body, str) else json.dumps(body),
            content_type="application/json",
            headers={"X-Forwarded-For": ip},
        )

    def sent_prompt(self):
        return self.openai.responses.create.call_args.kwargs["input"][0]["content"]


class TestGenerateEndpoint(AppTestCase):
    def test_success(self):
        response = self.post_generate(VALID)

        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertTrue(payload["success"])
        self.assertEqual(payload["data"], EXAM_RESULT)

        prompt = self.sent_prompt()
        for fragment in ("AA HL", "Paper 1", "Differentiation", "Total Marks: 20",
                         "Number of Questions: 3", "exact values only"):
            self.assertIn(fragment, prompt)

    def test_numeric_strings_and_sanitized_notes(self):
        body = dict(VALID, numQuestions="4", totalMarks="60", additionalNotes="  <b>{cones}</b> ")
        response = self.post_generate(body)

        self.assertEqual(response.status_code, 200)
        prompt = self.sent_prompt()
        self.assertIn("Number of Questions: 4", prompt)
        self.assertIn("Total Marks: 60", prompt)
        self.assertIn("- Teacher Notes: bcones/b\n", prompt)

    def test_malformed_body(self):
        response = self.post_generate("{not json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "Invalid request body.")
        self.openai.responses.create.assert_not_called()

    def test_invalid_config_lists_every_problem(self):
        response = self.post_generate(dict(VALID, level="AA XL", numQuestions=30))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "Invalid level. numQuestions must be 3–10")
        self.openai.responses.create.assert_not_called()

    def test_rate_limit(self):
        for _ in range(20):
            self.assertEqual(self.post_generate(VALID, ip="1.1.1.1").status_code, 200)

        denied = self.post_generate(VALID, ip="1.1.1.1")
        self.assertEqual(denied.status_code, 429)
        self.assertIn("Too many requests", denied.get_json()["error"])
        self.assertEqual(self.openai.responses.create.call_count, 20)

        self.assertEqual(self.post_generate(VALID, ip="2.2.2.2").status_code, 200)

    def test_rate_limit_runs_before_parsing(self):
        limiter = MagicMock()
        limiter.check_and_consume.return_value = False
        self.flask_app.extensions["rate_limiter"] = limiter
        self.assertEqual(self.post_generate("{not json").status_code, 429)
        limiter.check_and_consume.assert_called_once_with("10.0.0.1")

    def test_client_id_uses_first_forwarded_hop(self):
        self.post_generate(VALID, ip="9.9.9.9, 10.0.0.2")
        self.assertIn("9.9.9.9", self.limiter._records)

    def test_missing_forwarded_header_uses_unknown(self):
        self.app.post("/api/generate", data=json.dumps(VALID), content_type="application/json")
        self.assertIn("unknown", self.limiter._records)

    def test_upstream_errors_map_to_500(self):
        cases = [
            (FakeStatusError(401, "invalid x-api-key"), "Invalid OpenAI API key"),
            (FakeStatusError(400, "prompt too long"), "OpenAI API error: prompt too long"),
            (RuntimeError("connection reset"), "Failed to generate exam: connection reset"),
        ]
        for exc, message in cases:
            with self.subTest(message=message):
                self.openai.responses.create.side_effect = exc
                response = self.post_generate(VALID)
                self.assertEqual(response.status_code, 500)
                self.assertIn(message, response.get_json()["error"])

    def test_unparseable_reply(self):
        self.openai.responses.create.return_value = response_with("I could not do that.")
        response = self.post_generate(VALID)
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.get_json()["error"],
                         "AI returned an unexpected format. Please try again.")

    def test_reply_without_mark_scheme(self):
        self.openai.responses.create.return_value = response_with('{"exam": {"title": "x"}}')
        response = self.post_generate(VALID)
        self.assertEqual(response.status_code, 500)
        self.assertFalse(response.get_json()["success"])

    def test_unconfigured_key(self):
        self.flask_app.extensions["exam_generator"] = ExamGenerator(None, model="gpt-test")
        response = self.post_generate(VALID)
        self.assertEqual(response.status_code, 500)
        self.assertIn("OPENAI_API_KEY", response.get_json()["error"])


class TestDownloadPdf(AppTestCase):
    def test_exam_pdf(self):
        response = self.app.post("/download-pdf", json={"data": EXAM_RESULT, "document": "exam"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.mimetype, "application/pdf")
        self.assertTrue(response.data.startswith(b"%PDF"))
        self.assertIn("IB_Mathematics_AA_HL_Mock_Examination_Paper.pdf",
                      response.headers["Content-Disposition"])

    def test_mark_scheme_pdf(self):
        response = self.app.post("/download-pdf", json={"data": EXAM_RESULT, "document": "markScheme"})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data.startswith(b"%PDF"))
        self.assertIn("_MarkScheme.pdf", response.headers["Content-Disposition"])

    def test_huge_marks_value_is_rendered_quickly(self):
        data = {"exam": {"questions": [{"parts": [{"text": "x", "marks": 10_000_000}]}]}}
        started = time.monotonic()
        response = self.app.post("/download-pdf", json={"data": data, "document": "exam"})
        self.assertEqual(response.status_code, 200)
        self.assertLess(time.monotonic() - started, 5)
        self.assertLess(len(response.data), 200_000)

    def test_missing_data(self):
        response = self.app.post("/download-pdf", json={"document": "exam"})
        self.assertEqual(response.status_code, 400)

    def test_unknown_document(self):
        response = self.app.post("/download-pdf", json={"data": EXAM_RESULT, "document": "answers"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("Unknown document", response.get_json()["error"])


class TestSupportRoutes(AppTestCase):
    def test_index(self):
        response = self.app.get("/")
        self.assertEqual(response.status_code, 200)
        self.assertIn(b"MockPaper AI", response.data)

    def test_topics(self):
        payload = self.app.get("/topics").get_json()
        self.assertIn("Calculus", payload["topics"])
        self.assertEqual(payload["levels"], ["AA HL", "AA SL", "AI HL", "AI SL"])
        self.assertIn("Mixed / Custom", payload["paperTypes"])
        self.assertEqual(payload["difficulties"], ["Standard", "Challenging", "Exam Stretch"])

    def test_health(self):
        payload = self.app.get("/health").get_json()
        self.assertEqual(payload, {"status": "ok", "openai": "configured", "model": "gpt-test"})


if __name__ == "__main__":
    unittest.main()
