#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
漂流瓶相关prompt管理
心情描述生成、日记→心情改写、候选瓶子挑选
"""

from typing import Dict, List

BOTTLE_MOOD_SYSTEM_PROMPT = """# 漂流瓶心情描述任务

## 任务描述
你会读到一只漂流瓶里的全部内容。请用一句到两句话概括这只瓶子的情绪氛围，
以及收瓶人读到它时最可能产生的感受。

## 写作要求
- 具体、有画面感（例如“带着轻微想念的温暖怀旧”，而不是“开心”）
- 同时兼顾表面情绪和底层感受
- 只写情绪，不复述内容
- 不超过两句话

## 输出格式要求
只输出心情描述本身，不要任何解释"""

MOOD_QUERY_SYSTEM_PROMPT = """# 日记心情改写任务

## 任务描述
你会读到用户今天写的一篇日记。请判断TA此刻最需要、最想读到的是什么情绪的讯息。

## 写作要求
- 读懂字里行间的情绪状态
- 想一想什么样的心情能呼应、安慰或陪伴TA
- 具体、有画面感，一到两句话

## 输出格式要求
只输出心情描述本身，不要任何其他内容"""

BOTTLE_PICKER_SYSTEM_PROMPT = """# 漂流瓶挑选任务

## 任务描述
你会读到用户今天的日记，以及最多5只候选漂流瓶（编号、名称、心情）。
请挑出此刻最适合TA打开的那一只。

## 判断依据
- TA当下的情绪状态
- 哪只瓶子的心情最能引起共鸣
- 哪条讯息此刻对TA最有意义

## 输出格式要求
只输出一个数字，即所选瓶子的编号（例如“1”或“3”）
- 不要解释，不要多余文字
- 数字必须在 1 到候选数量之间"""


def describe_block(block: Dict) -> str:
    """把一个内容块转成心情分析用的文字"""
    block_type = block.get("type")
    if block_type == "text":
        return block.get("content", "")
    if block_type in ("image", "video") and block.get("caption"):
        return f"[{block_type}] {block['caption']}"
    return f"[{block_type}]"


def get_bottle_mood_prompt(content: Dict, description: str = None) -> str:
    """
    心情描述生成的用户消息

    参数：
        content (Dict): 瓶子内容 {"blocks": [...]}
        description (str): 管理员补充说明（可选）
    """
    text = "\n\n".join(filter(None, (describe_block(b) for b in content.get("blocks", []))))
    prompt = f"请分析这只漂流瓶的内容并给出心情描述：\n\n{text}"
    if description:
        prompt += f"\n\n补充说明：{description}"
    return prompt


def get_mood_query_prompt(journal_text: str) -> str:
    return f"请分析这篇日记，判断TA此刻最需要什么样的心情：\n\n{journal_text}"


def get_bottle_picker_prompt(journal_text: str, candidates: List[Dict]) -> str:
    """
    候选挑选的用户消息

    参数：
        journal_text (str): 日记原文
        candidates (List[Dict]): 按距离排好序的候选，每项含 id / name / mood
    """
    bottle_list = "\n".join(
        f'{i}. [ID: {c["id"]}] "{c["name"]}" - 心情: {c["mood"]}'
        for i, c in enumerate(candidates, 1)
    )
    return (
        f"日记：\n{journal_text}\n\n"
        f"候选漂流瓶：\n{bottle_list}\n\n"
        f"TA现在应该打开哪一只？只回复编号（1-{len(candidates)}）。"
    )
