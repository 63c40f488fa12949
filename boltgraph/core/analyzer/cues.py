"""
Local pragmatic cue extraction.

Cheap surface signals of intent (questions, imperatives, modal verbs,
addressing the reader). Shared by the hashing analyzer and the pragmatic
view generator's feature metadata.
"""

import re

SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\n+")
WORD_PATTERN = re.compile(r"[A-Za-z']+")

MODAL_VERBS = frozenset(
    {"can", "could", "may", "might", "must", "shall", "should", "will", "would", "ought"}
)
IMPERATIVE_STARTERS = frozenset(
    {
        "add", "avoid", "call", "check", "click", "configure", "create", "do", "don't",
        "enable", "ensure", "install", "let", "make", "note", "open", "please", "read",
        "remember", "remove", "run", "see", "set", "start", "stop", "try", "use", "write",
    }
)
FIRST_PERSON = frozenset({"i", "we", "me", "us", "my", "our"})
SECOND_PERSON = frozenset({"you", "your", "yours"})


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in SENTENCE_SPLIT.split(text) if s and s.strip()]


def extract_pragmatic_cues(text: str) -> dict[str, int]:
    """
    Count pragmatic cues in text.

    Returns:
        Counts for sentences, questions, exclamations, imperatives, modals,
        first_person and second_person
    """
    sentences = split_sentences(text)
    cues = {
        "sentences": len(sentences),
        "questions": 0,
        "exclamations": 0,
        "imperatives": 0,
        "modals": 0,
        "first_person": 0,
        "second_person": 0,
    }
    for sentence in sentences:
        if sentence.endswith("?"):
            cues["questions"] += 1
        elif sentence.endswith("!"):
            cues["exclamations"] += 1
        words = [w.lower() for w in WORD_PATTERN.findall(sentence)]
        if words and words[0] in IMPERATIVE_STARTERS:
            cues["imperatives"] += 1
        for word in words:
            if word in MODAL_VERBS:
                cues["modals"] += 1
            elif word in FIRST_PERSON:
                cues["first_person"] += 1
            elif word in SECOND_PERSON:
                cues["second_person"] += 1
    return cues


def cue_tokens(text: str) -> list[str]:
    """
    Tokens describing the pragmatic shape of text, one per sentence cue.

    Never empty for non-blank text: every sentence yields a mood token and
    the text yields a length bucket token.
    """
    tokens = []
    for sentence in split_sentences(text):
        words = [w.lower() for w in WORD_PATTERN.findall(sentence)]
        if sentence.endswith("?"):
            tokens.append("mood:question")
        elif words and words[0] in IMPERATIVE_STARTERS:
            tokens.append("mood:imperative")
        elif sentence.endswith("!"):
            tokens.append("mood:exclamation")
        else:
            tokens.append("mood:statement")
        for word in words:
            if word in MODAL_VERBS:
                tokens.append(f"modal:{word}")
            elif word in FIRST_PERSON:
                tokens.append("person:first")
            elif word in SECOND_PERSON:
                tokens.append("person:second")
        if words:
            tokens.append(f"opener:{words[0]}")
    tokens.append(f"length:{min(len(text) // 200, 10)}")
    return tokens
