"""Prompt templates for the Equilibrium assistant."""

from ..domain.utils import clean_text

SYSTEM_PROMPT = """You are Equilibrium, a calm and supportive wellbeing companion running entirely on the user's device.

## How you talk
- Warm, patient and non-judgemental
- Short paragraphs, plain language
- Ask one gentle follow-up question when it helps

## Boundaries
- You are not a therapist or a doctor and never diagnose
- If the user mentions self-harm or being in danger, encourage them to contact local emergency services or a crisis line right away
- Only rely on the reference notes when they are relevant; say so when you don't know
"""

AUGMENTED_PROMPT = """Use the reference notes below if they help answer the message. If they are not relevant, answer from general knowledge.

## Reference notes
{context}

## Message
{question}"""

NO_CONTEXT_PROMPT = """No reference notes matched this message. Answer from general knowledge.

## Message
{question}"""

# Turn-boundary and end-of-text markers of common chat templates
DEFAULT_STOP_SEQUENCES: tuple[str, ...] = (
    "</s>",
    "<|end|>",
    "<|eot_id|>",
    "<|end_of_text|>",
    "<|im_end|>",
    "<end_of_turn>",
    "<|endoftext|>",
    "\nUser:",
)

STOP_MARKER = "\n\n_[generation stopped by user]_"


def build_augmented_prompt(context: str, question: str) -> str:
    """Wrap the user's message with retrieved context.

    Args:
        context: Assembled context block, possibly empty.
        question: The user's original message.

    Returns:
        Prompt text sent to the model in place of the raw message.
    """
    context = clean_text(context).strip()
    if not context:
        return NO_CONTEXT_PROMPT.format(question=question)
    return AUGMENTED_PROMPT.format(context=context, question=question)
