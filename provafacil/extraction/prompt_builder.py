"""
Prompt builder for answer extraction.

Constructs the prompts sent alongside an answer sheet image. Both prompts
ask for the same JSON shape so one parser handles either response:

    {"extractedAnswers": ["A", "C", "ANULADA", ...]}
"""

from provafacil.models import ANULADA


class PromptBuilder:
    """
    Builds prompts for reading marked choices from sheet images.

    Two variants exist:
    1. Student answer sheets, where erasures and multiple marks are voided
    2. Answer key sheets, where only unreadable questions are voided
    """

    SYSTEM_PROMPT = f"""You are a precise optical answer-sheet reader for multiple-choice exams.

RULES:
1. Report exactly what is marked on the sheet. Do not guess, correct, or infer intended answers.
2. Report one entry per question, in question order, starting from question 1.
3. Each entry is a single upper-case option letter (e.g. "A", "B", "C", "D", "E") or "{ANULADA}".
4. "{ANULADA}" means the answer for that question cannot be determined.

OUTPUT RULES:
- Your output MUST be valid JSON matching the exact format specified.
- Do not add any text before or after the JSON."""

    _OUTPUT_FORMAT = """OUTPUT FORMAT (respond with ONLY this JSON, no other text):
{
  "extractedAnswers": ["<answer for question 1>", "<answer for question 2>", ...]
}"""

    @staticmethod
    def build_answer_sheet_prompt(expected_questions: int | None = None) -> str:
        """
        Build the user prompt for a student's answer sheet.

        Args:
            expected_questions: Number of questions on the exam, if known.

        Returns:
            The formatted user prompt.
        """
        lines = [
            "TASK: Extract the answers marked by the student on this answer sheet.",
            "",
            "For each question, identify the marked answer (e.g., 'A', 'B', 'C', 'D', 'E').",
            f"- If you cannot read the answer for a question, classify it as \"{ANULADA}\".",
            f"- If a question has erasures, classify it as \"{ANULADA}\".",
            f"- If a question has more than one option marked, classify it as \"{ANULADA}\".",
        ]
        lines.extend(PromptBuilder._count_hint(expected_questions))
        lines.extend(["", PromptBuilder._OUTPUT_FORMAT])
        return "\n".join(lines)

    @staticmethod
    def build_answer_key_prompt(expected_questions: int | None = None) -> str:
        """
        Build the user prompt for a photographed answer key.

        Args:
            expected_questions: Number of questions on the exam, if known.

        Returns:
            The formatted user prompt.
        """
        lines = [
            "TASK: Extract the correct answers from this answer key sheet.",
            "",
            "For each question, identify the marked answer (e.g., 'A', 'B', 'C', 'D', 'E').",
            f"- If you cannot read the answer for a question, classify it as \"{ANULADA}\".",
        ]
        lines.extend(PromptBuilder._count_hint(expected_questions))
        lines.extend(["", PromptBuilder._OUTPUT_FORMAT])
        return "\n".join(lines)

    @staticmethod
    def _count_hint(expected_questions: int | None) -> list[str]:
        if not expected_questions:
            return []
        return [
            f"- The exam has exactly {expected_questions} questions. "
            f"Return exactly {expected_questions} entries.",
        ]

    @staticmethod
    def get_system_prompt() -> str:
        """Get the system prompt for answer extraction."""
        return PromptBuilder.SYSTEM_PROMPT
