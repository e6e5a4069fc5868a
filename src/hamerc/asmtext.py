from __future__ import annotations
import re

def strip_comment(line: str) -> str:
    """Remove comments starting with '//' outside string literals.

    '#' is not a comment marker here: AArch64 uses it for immediates.
    """
    quoted = False
    i = 0
    while i < len(line):
        ch = line[i]
        if quoted and ch == '\\':
            i += 2
            continue
        if ch == '"':
            quoted = not quoted
        elif not quoted and line.startswith("//", i):
            return line[:i].strip()
        i += 1
    return line.strip()

LABEL_RE = re.compile(r"^([A-Za-z_.$][A-Za-z0-9_.$]*):\s*(.*)$")

def split_label(line: str):
    """Return (label, rest) if line has 'label:', else (None, line)."""
    m = LABEL_RE.match(line)
    if not m:
        return None, line
    return m.group(1), m.group(2).strip()

def is_directive(line: str) -> bool:
    return line.strip().startswith('.')

def split_mnemonic_operands(line: str):
    s = line.strip()
    if not s:
        return "", ""
    parts = s.split(None, 1)
    if len(parts) == 1:
        return parts[0].lower(), ""
    return parts[0].lower(), parts[1].strip()

def split_operands(op_str: str):
    if not op_str:
        return []
    # split by commas but not inside brackets or string literals
    out = []
    cur = []
    depth = 0
    quoted = False
    escaped = False
    for ch in op_str:
        if quoted:
            cur.append(ch)
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                quoted = False
        elif ch == '"':
            quoted = True
            cur.append(ch)
        elif ch == '[':
            depth += 1
            cur.append(ch)
        elif ch == ']':
            depth = max(0, depth-1)
            cur.append(ch)
        elif ch == ',' and depth == 0:
            s = ''.join(cur).strip()
            if s:
                out.append(s)
            cur = []
        else:
            cur.append(ch)
    s = ''.join(cur).strip()
    if s:
        out.append(s)
    return out
