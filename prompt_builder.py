"""
Prompt builder. Turns a validated ExamConfig into the instruction text
sent to the model. Pure and deterministic: same config, same prompt.
"""

from exam_config import ExamConfig

DIFFICULTY_GUIDANCE = {
    "Standard":     "accessible, routine IB questions",
    "Challenging":  "above average, multi-step reasoning required",
    "Exam Stretch": "hardest IB style, discriminating questions for top candidates",
}

MARK_CODES = [
    ("M1", "method"),
    ("A1", "accuracy"),
    ("ft", "follow-through"),
    ("AG", "answer given"),
    ("R1", "reasoning"),
]


def calculator_rule(config: ExamConfig) -> str:
    if config.is_paper_1:
        return "Paper 1: exact values only — surds, fractions, multiples of π. No decimals."
    return "Paper 2: calculator expected — use realistic decimals and real-world data."


def level_rule(config: ExamConfig) -> str:
    if config.is_higher_level:
        return "HL: include proof questions, abstract reasoning, and novel unseen contexts."
    return "SL: focus on guided procedural fluency with some application."


def build_prompt(config: ExamConfig) -> str:
    """Build the generation prompt. ``config`` must already be validated."""
    level       = config.level
    paper_type  = config.paper_type
    total_marks = config.total_marks
    num_q       = config.num_questions

    notes_line = (
        f"- Teacher Notes: {config.additional_notes}\n"
        if config.additional_notes
        else ""
    )
    duration = "90 minutes" if config.is_paper_1 else "120 minutes"
    calculator_instruction = (
        "Unless otherwise stated, do not use a calculator."
        if config.is_paper_1
        else "A graphic display calculator is required."
    )
    mark_codes = ", ".join(f"{code} ({meaning})" for code, meaning in MARK_CODES)

    return f"""You are an expert IB Mathematics examiner with 15+ years writing official IB exam papers. Generate an original mock exam and mark scheme. Do NOT copy or closely paraphrase any real past paper questions — all questions must be original.

==================================================
EXAM CONFIGURATION
==================================================
- Course: IB Mathematics {level}
- Paper Type: {paper_type}
- Topics: {", ".join(config.topics)}
- Difficulty: {config.difficulty}
- Total Marks: {total_marks}
- Number of Questions: {num_q}
{notes_line}
==================================================
STRICT REQUIREMENTS
==================================================
1. ALL math must use LaTeX: inline with $...$  and display with $$...$$
   Examples: "Find $f'(x)$ where $f(x) = \\ln(x^2 + 1)$"
             "Show that $$\\int_0^{{\\pi}} \\sin x \\, dx = 2$$"
2. Use authentic IB command terms: Find, Show that, Hence, Calculate, Determine, Prove, Sketch, Write down, Hence or otherwise
3. Label parts (a), (b), (c)… Mark allocations in square brackets: [3 marks]
4. {calculator_rule(config)}
5. {level_rule(config)}
6. Difficulty {config.difficulty} — {DIFFICULTY_GUIDANCE[config.difficulty]}
7. Questions must sum to EXACTLY {total_marks} marks total.
8. Mark scheme: use {mark_codes}. Show complete working.

Return ONLY a valid JSON object — no prose, no markdown code fences, nothing else:

{{
  "exam": {{
    "title": "IB Mathematics {level} Mock Examination",
    "subtitle": "{paper_type}",
    "duration": "{duration}",
    "totalMarks": {total_marks},
    "instructions": [
      "Answer all questions.",
      "{calculator_instruction}",
      "Show all working clearly.",
      "Answers without working may not receive full marks."
    ],
    "questions": [
      {{
        "number": 1,
        "topic": "Topic Name",
        "totalMarks": 12,
        "context": "Optional real-world setup (or empty string)",
        "parts": [
          {{
            "label": "a",
            "text": "Question text using $LaTeX$ notation.",
            "marks": 4,
            "command_term": "Find"
          }}
        ]
      }}
    ]
  }},
  "markScheme": {{
    "questions": [
      {{
        "number": 1,
        "parts": [
          {{
            "label": "a",
            "solution": "Step-by-step worked solution with $LaTeX$ math.",
            "marks_breakdown": ["M1 for setting up the equation", "A1 for correct answer"],
            "answer": "$x = \\\\frac{{3}}{{2}}$",
            "examiner_note": "Common error: students often forget to..."
          }}
        ]
      }}
    ]
  }}
}}

Generate all {num_q} questions now. Double-check all arithmetic is correct before outputting."""
