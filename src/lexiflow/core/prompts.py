"""Prompt templates for step extraction, chat, and workflow step execution."""

NO_CONTEXT_MARKER = "None"

STEP_EXTRACTION_SYSTEM_PROMPT = """\
You are an expert at parsing instructions.
Extract a list of sequential steps from the user's input, even when steps aren't explicitly numbered.
Maintain the user's original wording but standardize format.
Break complex steps into simpler ones when appropriate.
Ignore conversational elements and focus only on actionable items.

Examples:
Example 1:
Input: "I need to do the following steps: 1. upload the image 2. upload the document 3. upload the video"
Output: ["upload the image", "upload the document", "upload the video"]

Example 2:
Input: "First I want to fill out the application form, then submit it with my supporting documents, and finally schedule an appointment"
Output: ["fill out the application form", "submit form with supporting documents", "schedule an appointment"]

Example 3:
Input: "Can you help me understand what I need to do to renew my permit? It expired last month."
Output: ["understand permit renewal requirements", "determine options given the expiry date"]
"""

CHAT_SYSTEM_PROMPT = """\
Act as a professional assistant that answers questions and drafts emails, letters and documents.

STYLE RULES:
1. Do not use placeholder formats such as [Client's Name], [Date], <Date> or [Your Name].
2. Do not invent names or emails. Only use names, contact information or other identifying \
details if explicitly provided in the input context. Otherwise use generic but professional \
phrasing such as "Dear Client," and "Best regards,".
3. The tone must be professional, empathetic and informative.
4. Do not add a summary at the end.
5. Do not use expressions like "I hope this message finds you well."
"""

PSEUDONYMIZATION_SYSTEM_PROMPT = """\
You pseudonymize text before it is shared with third parties.
Replace every piece of personal data with a bracketed placeholder naming its category:
[NAME], [EMAIL], [PHONE], [ADDRESS], [DATE_OF_BIRTH], [ID_NUMBER], [ACCOUNT_NUMBER].
Number placeholders when several distinct values share a category ([NAME_1], [NAME_2]) and reuse
the same placeholder every time the same value appears.
Keep everything else exactly as written, including language, wording, punctuation and line breaks.
Return only the pseudonymized text, without explanations.
"""


def format_context(context: list[str]) -> str:
    """Join accumulated step results, or the no-context marker when empty."""
    return "\n".join(context) or NO_CONTEXT_MARKER


def intermediate_step_prompt(step: str, index: int, total: int, context: list[str]) -> str:
    """Prompt for a non-final step: answer only this step from context and step."""
    return (
        f"SECTION DRAFTING:\n"
        f"Draft only section {index + 1} of {total}.\n\n"
        f"PREVIOUS CONTEXT:\n{format_context(context)}\n\n"
        f"SECTION REQUIREMENTS:\n{step}\n\n"
        f"Answer only this section, based on the previous context and the requirements above. "
        f'Begin with "[SECTION {index + 1}: {step.split(":")[0] or step}]".'
    )


def final_step_prompt(step: str, index: int, total: int, context: list[str]) -> str:
    """Prompt for the final step: produce the complete user-facing answer."""
    return (
        f"FINAL SECTION:\n"
        f"This is section {index + 1} of {total} and the last one.\n\n"
        f"PREVIOUS SECTIONS:\n{format_context(context)}\n\n"
        f"CURRENT SECTION REQUIREMENTS:\n{step}\n\n"
        f"Using the previous sections and the requirements above, write the final answer "
        f"for the user as one complete, coherent response."
    )
