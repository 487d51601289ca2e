import unittest

from reportlab.platypus import Image, Paragraph

from pdf_export import (
    MATH_CACHE_SIZE,
    MAX_ANSWER_LINES,
    answer_line_count,
    build_styles,
    create_exam_pdf,
    create_mark_scheme_pdf,
    create_pdf,
    pdf_filename,
    render_math_png,
    rich_text,
    to_mathtext,
    wrap_math_line,
)

from fakes import EXAM_RESULT


class TestMathText(unittest.TestCase):
    def test_display_math_becomes_inline(self):
        self.assertEqual(to_mathtext("Show that $$ x^2 $$ holds"), "Show that $x^2$ holds")
        self.assertEqual(to_mathtext("Find $x$."), "Find $x$.")

    def test_wrap_never_splits_math(self):
        line = "Find " + " ".join(["word"] * 30) + r" $\frac{a + b}{c + d} = e$ and more"
        chunks = wrap_math_line(line, width=40)
        self.assertGreater(len(chunks), 1)
        self.assertTrue(any(r"$\frac{a + b}{c + d} = e$" in c for c in chunks))
        for c in chunks:
            self.assertEqual(c.count("$") % 2, 0)

    def test_render_cache_is_bounded(self):
        render_math_png.cache_clear()
        for i in range(MATH_CACHE_SIZE + 20):
            render_math_png(f"$x^{{{i}}}$", 6, 20)
        self.assertEqual(render_math_png.cache_info().currsize, MATH_CACHE_SIZE)
        render_math_png.cache_clear()

    def test_rich_text_renders_math_lines_as_images(self):
        style = build_styles()["QBody"]
        flowables = rich_text("Plain line\n\nFind $x^2 + 1$ now", style)
        self.assertIsInstance(flowables[0], Paragraph)
        self.assertIsInstance(flowables[1], Image)

    def test_unrenderable_math_falls_back_to_text(self):
        style = build_styles()["QBody"]
        flowables = rich_text(r"Matrix $\begin{pmatrix} 1 \end{pmatrix}$", style)
        self.assertEqual(len(flowables), 1)
        self.assertIsInstance(flowables[0], Paragraph)


class TestAnswerLines(unittest.TestCase):
    def test_scales_with_marks(self):
        self.assertEqual(answer_line_count(1), 2)
        self.assertEqual(answer_line_count(5), 6)

    def test_client_supplied_marks_are_capped(self):
        self.assertEqual(answer_line_count(10_000_000), MAX_ANSWER_LINES)
        self.assertEqual(answer_line_count(float("inf")), 2)
        self.assertEqual(answer_line_count(float("nan")), 2)
        self.assertEqual(answer_line_count(-50), 2)
        self.assertEqual(answer_line_count(True), 2)
        self.assertEqual(answer_line_count("9"), 2)


class TestCreatePdf(unittest.TestCase):
    def test_exam_and_mark_scheme(self):
        self.assertTrue(create_pdf(EXAM_RESULT, "exam").startswith(b"%PDF"))
        self.assertTrue(create_pdf(EXAM_RESULT, "markScheme").startswith(b"%PDF"))

    def test_missing_fields_are_tolerated(self):
        self.assertTrue(create_exam_pdf({}).startswith(b"%PDF"))
        self.assertTrue(create_exam_pdf({"questions": [{"parts": [{}]}, "junk"]}).startswith(b"%PDF"))
        self.assertTrue(create_mark_scheme_pdf({"questions": None}, None).startswith(b"%PDF"))

    def test_unknown_document(self):
        with self.assertRaises(ValueError):
            create_pdf(EXAM_RESULT, "answers")

    def test_filename(self):
        exam = EXAM_RESULT["exam"]
        self.assertEqual(pdf_filename(exam, "exam"), "IB_Mathematics_AA_HL_Mock_Examination_Paper.pdf")
        self.assertEqual(pdf_filename(exam, "markScheme"),
                         "IB_Mathematics_AA_HL_Mock_Examination_MarkScheme.pdf")
        self.assertEqual(pdf_filename({}, "exam"), "Exam_Paper.pdf")


if __name__ == "__main__":
    unittest.main()
