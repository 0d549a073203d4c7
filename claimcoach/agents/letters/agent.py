"""Prose generators for dispute letters, owner pitches and RCV demands.

These are single-shot chains on the writer model; each returns the letter
text and raises on failure so the calling service can record it.
"""
from typing import Any, Dict

from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate

from claimcoach.llm.factory import get_writer_llm
from claimcoach.agents.letters.prompts import (
    DISPUTE_LETTER_SYSTEM_PROMPT,
    DISPUTE_LETTER_USER_PROMPT,
    OWNER_PITCH_SYSTEM_PROMPT,
    OWNER_PITCH_USER_PROMPT,
    RCV_DEMAND_SYSTEM_PROMPT,
    RCV_DEMAND_USER_PROMPT,
)


async def _write(system_prompt: str, user_prompt: str, variables: Dict[str, Any]) -> str:
    prompt = ChatPromptTemplate.from_messages([
        ("system", system_prompt),
        ("user", user_prompt),
    ])
    chain = prompt | get_writer_llm() | StrOutputParser()
    content = (await chain.ainvoke(variables)).strip()
    if not content:
        raise ValueError("writer model returned an empty letter")
    return content


async def write_dispute_letter(variables: Dict[str, Any]) -> str:
    return await _write(DISPUTE_LETTER_SYSTEM_PROMPT, DISPUTE_LETTER_USER_PROMPT, variables)


async def write_owner_pitch(variables: Dict[str, Any]) -> str:
    return await _write(OWNER_PITCH_SYSTEM_PROMPT, OWNER_PITCH_USER_PROMPT, variables)


async def write_rcv_demand(variables: Dict[str, Any]) -> str:
    return await _write(RCV_DEMAND_SYSTEM_PROMPT, RCV_DEMAND_USER_PROMPT, variables)
