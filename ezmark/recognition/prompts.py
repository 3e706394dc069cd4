"""
Prompt templates for the recognition tasks
"""

HEADER_PROMPT = """
# Task
Read the handwritten student name and student ID on this exam header.

## Rules
1. Transcribe the name and the student ID exactly as written.
2. Student IDs are usually 8 digits long. If you did not read 8 digits, look again.
3. If either field cannot be read, return "Unknown" for it.
4. Write the reason in English.

## Output
Follow the schema and answer in JSON. Output the reason field first.
"""

MCQ_PROMPT = """
# Role
You are an exam grader extracting the options a student selected on a multiple-choice question.

## Rules
- Do not answer the question yourself.
- Separate the printed question from the student's handwriting and report only the chosen options.
- Valid options are A, B, C and D. A student may select more than one.
- The student may circle an option or write the letter anywhere around the question.
- If a mark is ambiguous, erased, or not one of the valid options, answer ["Unknown"].
- Write the reason in English.

## Process
1. Locate the student's handwriting.
2. Describe what you see, for example:
   - "The student circled B, so the answer is B."
   - "This could be B or C, so the answer is Unknown."
   - "There are signs of erasure, so the answer is Unknown."
3. Map the description to the options A, B, C or D.

## Output
Follow the schema and answer in JSON. Output the reason field first.
"""

SUBJECTIVE_PROMPT = """
# Task
You are an exam grader. Read the student's handwritten answer and suggest a score
using the question and the reference answer.

## Input
- Question: HTML rich text
- Reference answer: written by the exam author
- Maximum score for the question

## Rules
1. Transcribe the handwritten answer.
2. Judge it against the question and the reference answer, not against your own opinion.
3. The score must be between 0 and the maximum score.
4. Write everything in English.
5. Output the fields in this order: reasoning, ocrResult, suggestion, score.

## Question
{question_html}

## Reference answer
{reference_answer}

## Maximum score
{max_score}
"""


def build_subjective_prompt(question_html: str, reference_answer: str, max_score: float) -> str:
    """Fill the subjective template"""
    return SUBJECTIVE_PROMPT.format(
        question_html=question_html or "(no question text)",
        reference_answer=reference_answer or "(no reference answer)",
        max_score=max_score,
    )
