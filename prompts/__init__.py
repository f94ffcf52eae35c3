#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
漂流瓶prompt配置包
"""

from .bottle_prompts import (
    BOTTLE_MOOD_SYSTEM_PROMPT,
    MOOD_QUERY_SYSTEM_PROMPT,
    BOTTLE_PICKER_SYSTEM_PROMPT,
    get_bottle_mood_prompt,
    get_mood_query_prompt,
    get_bottle_picker_prompt,
)

__all__ = [
    'BOTTLE_MOOD_SYSTEM_PROMPT',
    'MOOD_QUERY_SYSTEM_PROMPT',
    'BOTTLE_PICKER_SYSTEM_PROMPT',
    'get_bottle_mood_prompt',
    'get_mood_query_prompt',
    'get_bottle_picker_prompt',
]
