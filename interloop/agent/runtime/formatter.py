"""
事件格式化输出

把语义事件渲染为终端文本：
- minimal: 只显示工具名和错误
- normal:  流式文本 + 简洁的工具参数 / 结果
- verbose: 完整事件数据
"""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from typing import Any, AsyncIterable, Dict, Optional, TextIO

from interloop.agent.runtime.event_stream import AgentEvent, AgentEventType, EventStream


class Colors:
    """终端颜色"""
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    CYAN = "\033[36m"

    ORANGE = "\033[38;5;208m"
    PURPLE = "\033[38;5;183m"


def colorize(text: str, color: str, enabled: bool = True) -> str:
    """给文本添加颜色"""
    return f"{color}{text}{Colors.RESET}" if enabled else text


@dataclass
class FormatOptions:
    """格式化选项"""
    verbosity: str = "normal"            # minimal | normal | verbose
    colors: Optional[bool] = None        # None 时根据是否为 TTY 自动判断
    show_thoughts: bool = True
    tool_prefix: str = "●"


def _to_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2, default=str)


def format_args(args: Dict[str, Any], max_len: int = 40) -> str:
    """
    紧凑显示工具参数

    query / pattern / command 显示为引号字符串，path / file / directory 显示在括号中，
    其他字符串显示为 key: "value"，数字和布尔值显示为 key: value，其余类型忽略。
    """
    parts = []
    for key, value in (args or {}).items():
        if isinstance(value, str):
            display = f"{value[:max_len]}..." if len(value) > max_len else value
            if key in ("query", "pattern", "command"):
                parts.append(f'"{display}"')
            elif key in ("path", "file", "directory"):
                parts.append(f"({display})")
            else:
                parts.append(f'{key}: "{display}"')
        elif isinstance(value, bool):
            parts.append(f"{key}: {'true' if value else 'false'}")
        elif isinstance(value, (int, float)):
            parts.append(f"{key}: {value}")

    result = " ".join(parts)
    return f"{result[:80]}..." if len(result) > 80 else result


def format_event(
    event: AgentEvent,
    options: Optional[FormatOptions] = None,
    stream: Optional[TextIO] = None,
) -> Optional[str]:
    """
    把单个事件格式化为字符串

    Args:
        event: 语义事件
        options: 格式化选项
        stream: 输出流（用于判断是否为 TTY）

    Returns:
        要输出的文本；不需要输出时返回 None
    """
    options = options or FormatOptions()
    verbosity = options.verbosity
    if options.colors is not None:
        use_colors = options.colors
    else:
        out = stream or sys.stdout
        use_colors = bool(getattr(out, "isatty", lambda: False)())

    def paint(text: str, color: str) -> str:
        return colorize(text, color, use_colors)

    event_type = event.type

    if event_type == AgentEventType.TEXT_DELTA:
        return event["delta"]

    if event_type in (AgentEventType.TEXT_START, AgentEventType.TEXT_END):
        return None

    if event_type == AgentEventType.THOUGHT_SUMMARY:
        summary = event.get("summary") or {}
        if not options.show_thoughts or summary.get("type") != "text" or not summary.get("text"):
            return None
        return paint(summary["text"], Colors.ORANGE + Colors.DIM)

    if event_type == AgentEventType.TOOL_START:
        prefix = paint(options.tool_prefix, Colors.PURPLE)
        name = paint(event["name"], Colors.BOLD)
        if verbosity == "minimal":
            return f"{prefix} {name}"
        if verbosity == "verbose":
            return f"{prefix} {name}\n{paint(_to_json(event.get('arguments')), Colors.DIM)}"
        formatted = format_args(event.get("arguments") or {})
        args = paint(f" {formatted}", Colors.DIM) if formatted else ""
        return f"{prefix} {name}{args}"

    if event_type == AgentEventType.TOOL_END:
        result = event.get("result") or ""
        is_error = event.get("isError", False)
        if verbosity == "minimal":
            return paint("  ↳ Error", Colors.RED) if is_error else None
        if is_error:
            if verbosity == "verbose":
                return paint(f"  ↳ Error:\n{result}", Colors.RED)
            suffix = "..." if len(result) > 60 else ""
            return paint(f"  ↳ Error: {result[:60]}{suffix}", Colors.RED)
        if verbosity == "verbose":
            return paint(f"  ↳ Result:\n{result}", Colors.DIM)
        return paint(f"  ↳ {len(result.split(chr(10)))} lines of output", Colors.DIM)

    if verbosity != "verbose":
        return None

    # 以下只在 verbose 模式输出
    if event_type == AgentEventType.TOOL_DELTA:
        partial = event.get("partialResult")
        if hasattr(partial, "to_dict"):
            partial = partial.to_dict()
        return paint(f"  [delta] {json.dumps(partial, ensure_ascii=False, default=str)}", Colors.DIM)
    if event_type == AgentEventType.AGENT_START:
        return paint("[agent.start]", Colors.CYAN)
    if event_type == AgentEventType.AGENT_END:
        return paint(f"[agent.end] {len(event.get('interactions') or [])} turns", Colors.CYAN)
    if event_type == AgentEventType.INTERACTION_START:
        return paint(f"[interaction.start] {event.get('interactionId')}", Colors.CYAN)
    if event_type == AgentEventType.INTERACTION_END:
        return paint("[interaction.end]", Colors.CYAN)
    return paint(f"[unknown]\n{_to_json(event.to_dict())}", Colors.DIM)


async def print_formatted_events(
    events: AsyncIterable[AgentEvent],
    options: Optional[FormatOptions] = None,
    out: Optional[TextIO] = None,
) -> None:
    """
    逐个输出格式化后的事件（文本增量不换行）

    Args:
        events: 事件序列
        options: 格式化选项
        out: 输出流，默认 sys.stdout
    """
    out = out or sys.stdout
    last_was_text = False

    async for event in events:
        formatted = format_event(event, options, out)
        if formatted is None:
            continue

        if event.type == AgentEventType.TEXT_DELTA:
            out.write(formatted)
            last_was_text = True
        else:
            if last_was_text:
                out.write("\n")
                last_was_text = False
            out.write(formatted + "\n")
        out.flush()

    if last_was_text:
        out.write("\n")
        out.flush()


async def print_stream(
    stream: EventStream,
    options: Optional[FormatOptions] = None,
    out: Optional[TextIO] = None,
) -> Any:
    """
    输出整个事件通道并返回最终结果

    用法:
        stream = agent_loop("Hello!", AgentLoopConfig(), transport)
        result = await print_stream(stream)

    后台任务异常终止时，在输出完终止事件后重新抛出。
    """
    await print_formatted_events(stream, options, out)
    if stream.task is not None:
        return await stream.task
    return await stream.result()
