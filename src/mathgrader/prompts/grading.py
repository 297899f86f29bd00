"""
Grading prompts for math homework.

Contains:
- System prompt for the grading call
- Blind grading prompt (no answer key shown, the model solves everything)
- OCR supplement appended when Mathpix text is available
- Batched feedback prompt
"""

from typing import Any, Dict, List, Optional


GRADING_SYSTEM_PROMPT = """You are an experienced math teacher grading K-12 homework from a photo.

HOW TO GRADE:
1. Locate every problem on the page, in the order the student numbered them
2. Work out the correct answer to each problem yourself before looking at the student's answer
3. Read the student's final answer
4. Decide whether the student's answer equals yours; equivalent forms count (1/2, 0.5 and 50% are the same value)
5. Give partial credit only when the work shown earns it

READABILITY:
- Rate, per problem, how sure you are of what is written: 1.0 clear, 0.7 messy but legible, 0.5 guessing, 0.3 barely legible
- If any problem is below 0.7, set needsReview to true and describe the difficulty in readabilityIssue
- Crossed-out or blank answers: studentAnswer is null
- Upside-down, sideways or overlapping writing is still graded; mention it in readabilityIssue
- Torn or hidden parts of the page: grade what is visible and explain in reviewReason

The student's name is usually written at the top of the page.

Reply with JSON only. No prose before or after it."""


GRADING_RESPONSE_SCHEMA = """{
  "studentName": "name written on the page, or null",
  "nameConfidence": 0.0 to 1.0,
  "questions": [
    {
      "questionNumber": 1,
      "problemText": "the problem as written, e.g. '6 x 7 ='",
      "aiCalculation": "your own working, e.g. '6 x 7 = 42'",
      "aiAnswer": "your answer, e.g. '42'",
      "studentAnswer": "the student's answer, or null if blank or unreadable",
      "isCorrect": true or false,
      "confidence": 0.0 to 1.0,
      "readabilityConfidence": 0.0 to 1.0,
      "readabilityIssue": "what was hard to read, or null",
      "pointsAwarded": number,
      "pointsPossible": number
    }
  ],
  "totalScore": number,
  "totalPossible": number,
  "needsReview": true or false,
  "reviewReason": "why a teacher should look at this, or null"
}"""


def build_blind_grading_prompt(extract_student_name: bool = True) -> str:
    """
    Build the grading prompt.

    The answer key is never shown to the model; it is compared against
    the model's own answers after the call returns.
    """
    name_step = (
        "1. Find the student's name, usually at the top of the page\n"
        if extract_student_name
        else "1. Ignore the student's name (set studentName to null)\n"
    )

    return f"""Grade this math homework using only your own calculations.

There is no answer key. Solve every problem yourself.

STEPS:
{name_step}2. For each problem:
   a. Copy the problem exactly as written into problemText
   b. Solve it and show the working in aiCalculation
   c. Put your final answer in aiAnswer
   d. Put what the student wrote in studentAnswer
   e. Set isCorrect to whether the student's answer equals your aiAnswer

Your answer is the reference. Grade on mathematical correctness only.

Respond with exactly this JSON structure:
{GRADING_RESPONSE_SCHEMA}"""


def build_ocr_supplement(
    latex: Optional[str],
    text: Optional[str],
    confidence: float,
) -> str:
    """
    Extra prompt section carrying OCR output.

    The model still sees the image; the transcription helps with dense
    or messy handwriting.
    """
    parts = [
        "",
        f"OCR TRANSCRIPTION (confidence {confidence:.2f}):",
        "Use this to help read the page. Where it disagrees with the image, trust the image.",
    ]
    if latex:
        parts.append(f"LaTeX:\n{latex}")
    if text and text != latex:
        parts.append(f"Text:\n{text}")
    return "\n".join(parts)


FEEDBACK_SYSTEM_PROMPT = """You are a patient math teacher writing short notes to young students.
Be warm and specific. Keep each note to one or two sentences in plain words.
Never be harsh."""


def build_batch_feedback_prompt(questions: List[Dict[str, Any]]) -> str:
    """
    Build one prompt that asks for feedback on every graded question.

    Args:
        questions: dicts with question_number, student_answer,
            correct_answer and is_correct

    Returns:
        Prompt requesting {"feedback": [...], "overallMessage": ...}
    """
    lines = []
    for q in questions:
        verdict = "CORRECT" if q.get("is_correct") else "INCORRECT"
        student = q.get("student_answer") or "(blank)"
        correct = q.get("correct_answer") or "(unknown)"
        lines.append(
            f'Q{q.get("question_number")}: student wrote "{student}", correct answer "{correct}". {verdict}'
        )

    return f"""Write feedback for each question of this graded homework.

{chr(10).join(lines)}

Respond with JSON:
{{
  "feedback": [
    {{"questionNumber": 1, "message": "one or two sentences"}}
  ],
  "overallMessage": "one encouraging sentence about the whole page"
}}

For wrong answers, point to the right approach without giving a lecture."""
