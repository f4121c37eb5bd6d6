"""Prompt assembly for the generation stages.

Wording is intentionally compact; each prompt states the JSON contract the
matching parser in `app.services.response_contract` validates.
"""

from __future__ import annotations

import json
from typing import Mapping, Sequence

from app.domain.models import Utterance
from app.domain.tags import BEHAVIORAL_CODES

ROLE_SYSTEM_PROMPT = (
    "You analyse transcripts of a parent playing with a young child. "
    "Decide for every speaker id whether the speaker is an ADULT or a CHILD, "
    "judging the whole conversation rather than single lines."
)

CODING_SYSTEM_PROMPT = (
    "You are a parent-child interaction coder. Assign exactly one code to every "
    "ADULT utterance using only this vocabulary: "
    + ", ".join(BEHAVIORAL_CODES)
    + ". LP=labeled praise, UP=unlabeled praise, BD=behavior description, "
    "RF=reflection, RQ=reflective question, DC=direct command, IC=indirect command, "
    "VC=vague command, CC=chained command, Q=question, NTA=negative talk, "
    "ID=information description, AK=acknowledgement. "
    "Give one short, warm coaching sentence as feedback for each coded line."
)

NARRATIVE_SYSTEM_PROMPT = (
    "You are a warm, encouraging parenting coach summarising one play session."
)

REVISION_SYSTEM_PROMPT = (
    "You review coaching feedback written for individual lines of a play session "
    "and improve it where it is vague, repetitive or inaccurate."
)

DEVELOPMENTAL_SYSTEM_PROMPT = (
    "You are a child development specialist. Describe what the child's speech and "
    "play in this session suggest about their development, without diagnosing."
)

COACHING_SYSTEM_PROMPT = (
    "You are a parenting coach writing a personalised coaching note after a "
    "child-directed play session."
)

FORMAT_SYSTEM_PROMPT = (
    "You convert a free-text coaching note into structured coaching cards."
)

PDI_SYSTEM_PROMPT = (
    "You review parent-directed interaction sessions and evaluate how the parent "
    "gave commands and followed through with the child."
)


def _numbered_lines(utterances: Sequence[Utterance], *, include_codes: bool = False) -> str:
    lines = []
    for utterance in utterances:
        if utterance.is_silent:
            lines.append(
                f"[{utterance.order}] (silence {utterance.duration:.1f}s)"
            )
            continue
        role = utterance.role.value.upper() if utterance.role else utterance.speaker
        line = f"[{utterance.order}] {role}: {utterance.text}"
        if include_codes and utterance.behavioral_code:
            line += f" [{utterance.behavioral_code}]"
            if utterance.feedback:
                line += f" feedback: {utterance.feedback}"
        lines.append(line)
    return "\n".join(lines)


def build_role_prompt(utterances: Sequence[Utterance]) -> str:
    payload = [
        {
            "speaker": utterance.speaker,
            "text": utterance.text,
            "start": round(utterance.start_time, 2),
            "end": round(utterance.end_time, 2),
        }
        for utterance in utterances
        if not utterance.is_silent
    ]
    return (
        "Utterances:\n"
        + json.dumps(payload, ensure_ascii=False)
        + "\n\nRespond with JSON only: "
        '{"speaker_identification": {"<speaker id>": '
        '{"role": "ADULT"|"CHILD", "confidence": 0-1, "utterance_count": <int>}}}'
    )


def build_coding_prompt(utterances: Sequence[Utterance], mode: str) -> str:
    payload = [
        {
            "id": utterance.order,
            "role": utterance.role.value if utterance.role else None,
            "text": utterance.text,
        }
        for utterance in utterances
        if not utterance.is_silent
    ]
    return (
        f"Session mode: {mode}\n"
        "Utterances (code ADULT lines only, use the child lines as context):\n"
        + json.dumps(payload, ensure_ascii=False)
        + '\n\nRespond with a JSON array only: [{"id": <int>, "code": "<CODE>", "feedback": "<text>"}]'
    )


def build_narrative_prompt(
    utterances: Sequence[Utterance],
    tag_counts: Mapping[str, int],
    mode: str,
) -> str:
    return (
        f"Mode: {mode}\nSkill counts: {json.dumps(dict(tag_counts))}\n\n"
        f"Coded transcript:\n{_numbered_lines(utterances, include_codes=True)}\n\n"
        "Respond with JSON only: "
        '{"topMoment": {"quote": "<exact adult quote>", "utteranceNumber": <int>}, '
        '"Feedback": "<one or two sentence opening>", "reminder": "<closing encouragement>", '
        '"ChildReaction": "<short insight about the child>", "exampleUtteranceNumber": <int>}'
    )


def build_revision_prompt(utterances: Sequence[Utterance], max_silent_slots: int) -> str:
    return (
        f"Coded transcript:\n{_numbered_lines(utterances, include_codes=True)}\n\n"
        "Return only the lines whose feedback should change. You may also add coaching "
        f"for at most {max_silent_slots} silence lines worth commenting on.\n"
        'Respond with a JSON array only: [{"id": <int>, "feedback": "<text>", "additional_tip": "<text or null>"}]'
    )


def build_developmental_prompt(utterances: Sequence[Utterance]) -> str:
    return (
        f"Transcript:\n{_numbered_lines(utterances)}\n\n"
        "Respond with JSON only: "
        '{"developmental_observation": {"summary": "<text>", "domains": '
        '[{"domain": "<language|social|cognitive|emotional>", "observation": "<text>"}]}, '
        '"session_metadata": {}}'
    )


def build_coaching_prompt(utterances: Sequence[Utterance], tag_counts: Mapping[str, int]) -> str:
    return (
        f"Skill counts: {json.dumps(dict(tag_counts))}\n\n"
        f"Coded transcript:\n{_numbered_lines(utterances, include_codes=True)}\n\n"
        "Write a short coaching note in plain prose: what went well, what to try next, "
        "and one concrete goal for tomorrow."
    )


def build_format_prompt(narrative: str) -> str:
    return (
        f"Coaching note:\n{narrative}\n\n"
        "Respond with JSON only: "
        '{"sections": [{"title": "<text>", "body": "<text>"}], "tomorrowGoal": "<text>"}'
    )


def build_pdi_prompt(utterances: Sequence[Utterance], tag_counts: Mapping[str, int]) -> str:
    return (
        f"Command counts: {json.dumps(dict(tag_counts))}\n\n"
        f"Coded transcript:\n{_numbered_lines(utterances, include_codes=True)}\n\n"
        "Respond with JSON only: "
        '{"pdiSkills": [{"skill": "<text>", "performance": "<text>", "feedback": "<text>"}], '
        '"commandSequences": [{"command": "<text>", "outcome": "<text>"}], '
        '"tomorrowGoal": "<text>", "encouragement": "<text>", "summary": "<text>"}'
    )


__all__ = [
    "CODING_SYSTEM_PROMPT",
    "COACHING_SYSTEM_PROMPT",
    "DEVELOPMENTAL_SYSTEM_PROMPT",
    "FORMAT_SYSTEM_PROMPT",
    "NARRATIVE_SYSTEM_PROMPT",
    "PDI_SYSTEM_PROMPT",
    "REVISION_SYSTEM_PROMPT",
    "ROLE_SYSTEM_PROMPT",
    "build_coaching_prompt",
    "build_coding_prompt",
    "build_developmental_prompt",
    "build_format_prompt",
    "build_narrative_prompt",
    "build_pdi_prompt",
    "build_revision_prompt",
    "build_role_prompt",
]
