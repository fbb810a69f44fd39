import re

_FORMATTING_CODE = re.compile(r"§.", re.DOTALL)


def motd_strip_formatting(raw_motd: str | dict | list | None) -> str:
    """
    用于去除 MOTD 中所有格式代码的函数。
    支持 JSON 聊天组件（以字典或列表形式）以及旧版格式代码

    组件按深度优先顺序展开，不使用递归，嵌套层数不受解释器递归深度限制。

    :param raw_motd: 原始 MOTD，可以是字符串、字典或列表
    """
    parts: list[str] = []
    pending: list = [raw_motd]

    while pending:
        item = pending.pop()
        if item is None:
            continue
        if isinstance(item, dict):
            pending.extend(reversed(item.get("extra") or []))
            pending.append(item.get("text", ""))
        elif isinstance(item, list):
            pending.extend(reversed(item))
        else:
            parts.append(_FORMATTING_CODE.sub("", str(item)))

    return "".join(parts)
