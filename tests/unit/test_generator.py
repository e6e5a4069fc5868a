import re
import pytest

from src.hamerc.lexer import tokenize, TokenKind
from src.hamerc.parser import parse
from src.hamerc.generator import generate, ClassLayouts, escape_ascii, FIELD_SIZE
from src.hamerc.options import Options
from src.hamerc.diagnostics import CompileError
from src.hamerc.ast import Path, If, PrintVar

def _gen(src, **kw):
    stmts, _ = parse(tokenize(src))
    return generate(stmts, **kw)

def _body(res):
    return [l.strip() for l in res.text.splitlines()]

def test_prologue_and_epilogue():
    lines = _body(_gen(""))
    assert lines[:4] == [".global _start", ".section .text", "", "_start:"]
    assert "mov x11, #10" in lines
    assert "mov x8, #222" in lines
    assert lines.index("mov x20, x0") < lines.index("mov x19, x20") < lines.index("add x20, x20, #16")
    assert lines[-3:] == ["mov x0, #0", "mov x8, #93", "svc #0"]

def test_heap_size_option():
    lines = _body(_gen("", options=Options(heap_size=100000)))
    assert "ldr x1, =0x00000000000186A0" in lines
    assert "mov x1, #4096" in _body(_gen(""))

def test_layout_offsets():
    lay = ClassLayouts()
    lay.define("P", ("a", "b", "c"))
    assert [lay.offset("P", f) for f in "abc"] == [0, FIELD_SIZE, 2 * FIELD_SIZE]
    assert lay.size("P") == 24
    assert lay.offset("P", "zz") is None
    assert lay.size("Q") is None and lay.offset("Q", "a") is None

def test_field_store_and_load():
    res = _gen("class P is a b c done local p = new P p.c = 3 p.b = p.b + 2")
    lines = _body(res)
    assert "mov x12, x20" in lines
    assert "add x20, x20, #24" in lines
    assert "str x1, [x12, #16]" in lines
    i = lines.index("ldr x1, [x12, #8]")
    assert lines[i:i + 3] == ["ldr x1, [x12, #8]", "add x1, x1, #2", "str x1, [x12, #8]"]
    assert res.diagnostics == []

def test_unknown_field_uses_offset_zero():
    res = _gen("class P is a done local p = new P p.zz = 1")
    assert "str x1, [x12]" in _body(res)
    assert len(res.diagnostics) == 1
    assert "Campo no resuelto: p.zz" in res.diagnostics[0].message
    assert res.diagnostics[0].severity == "advertencia"

def test_unknown_class_does_not_advance_bump():
    res = _gen("local p = new Ghost")
    lines = _body(res)
    assert "mov x12, x20" in lines
    assert lines.count("add x20, x20, #16") == 1  # sólo el del prólogo
    assert "Clase desconocida" in res.diagnostics[0].message

def test_consecutive_allocations_spaced_by_class_size():
    lines = _body(_gen("class P is a b c done local p = new P local q = new P"))
    assert lines.count("add x20, x20, #24") == 2
    assert lines.index("mov x12, x20") < lines.index("mov x13, x20")

def test_empty_class_reserves_nothing():
    lines = _body(_gen("class E done local e = new E"))
    assert "mov x12, x20" in lines
    assert lines.count("add x20, x20, #16") == 1

def test_redeclaration_reuses_register():
    res = _gen("local x 1 local x 2 local y 3")
    lines = _body(res)
    assert "mov x12, #1" in lines and "mov x12, #2" in lines
    assert "mov x13, #3" in lines
    assert res.context.regs.allocated == ["x12", "x13"]

def test_register_allocation_skips_reserved():
    names = " ".join(f"local v{i} {i}" for i in range(14))
    res = _gen(names)
    alloc = res.context.regs.allocated
    assert len(alloc) == 14
    assert not {"x18", "x19", "x20"} & set(alloc)
    assert alloc[-1] == "x28"

def test_register_exhaustion_is_fatal():
    names = " ".join(f"local v{i} {i}" for i in range(15))
    with pytest.raises(CompileError) as ei:
        _gen(names)
    assert "Registros agotados" in ei.value.diagnostic.message

def test_unknown_variable_falls_back_to_x0():
    res = _gen("y = 3")
    assert "mov x0, #3" in _body(res)
    assert "Variable desconocida: y" in res.diagnostics[0].message

def test_print_unknown_variable_emits_nothing():
    base = _body(_gen(""))
    res = _gen("print y")
    assert _body(res) == base
    assert len(res.diagnostics) == 1

def test_unsupported_update_operator_adds():
    res = _gen("local x 4 x = x * 2")
    assert "add x12, x12, #2" in _body(res)
    assert any("Operador no soportado" in d.message for d in res.diagnostics)

def test_comparison_skip_branches():
    lines = _body(_gen("local x 1 if x == 1 then done if x > 1 then done if x < 1 then done"))
    branches = [l for l in lines if l.startswith("b.")]
    assert branches == ["b.ne .Lif0", "b.le .Lif1", "b.ge .Lif2"]

def test_unsupported_comparison_uses_eq():
    stmts = [If(Path(("x",)), TokenKind.PLUS, 3.0, ())]
    res = generate(stmts)
    assert "b.eq .Lif0" in _body(res)
    assert any("Comparación no soportada" in d.message for d in res.diagnostics)

def test_labels_strictly_increasing():
    src = 'local x 1 while x < 3 do x = x + 1 done print "a" if x > 1 then print x done if ? 5 then done'
    text = _gen(src).text
    ids = [int(m) for m in re.findall(r"^\.L(?:w_start|str|if)(\d+):", text, re.M)]
    assert ids == sorted(set(ids))
    assert ".Lw_start0:" in text and ".Lstr1:" in text and ".Lif2:" in text
    assert ".Lpp3:" in text and ".Lskp4:" in text and ".Lif4:" in text

def test_while_structure():
    lines = _body(_gen("local i 0 while i < 5 do i = i + 1 done"))
    i = lines.index(".Lw_start0:")
    assert lines[i:i + 6] == [
        ".Lw_start0:", "mov x1, x12", "cmp x1, #5", "b.ge .Lw_end0",
        "add x12, x12, #1", "b .Lw_start0",
    ]
    assert lines[i + 6] == ".Lw_end0:"

def test_immediate_forms():
    lines = _body(_gen("local x = 70000 x = x + 5000 if x > 4095 then done if x > 4096 then done local f 3.9"))
    assert "ldr x12, =0x0000000000011170" in lines
    assert lines[lines.index("mov x2, #5000") + 1] == "add x12, x12, x2"
    assert "cmp x1, #4095" in lines
    assert lines[lines.index("mov x2, #4096") + 1] == "cmp x1, x2"
    assert "mov x13, #3" in lines

def test_print_string_data_section():
    lines = _body(_gen('print "a\\b" print "ñ"'))
    assert '.Lstr0: .ascii "a\\\\b\\n"' in lines
    assert lines[lines.index("adr x1, .Lstr0") + 1] == "mov x2, #4"
    assert lines[lines.index("adr x1, .Lstr1") + 1] == "mov x2, #3"
    assert escape_ascii('x"y') == 'x\\"y'

def test_print_var_loads_field():
    lines = _body(_gen("class P is a b done local p = new P print p.b"))
    assert "ldr x0, [x12, #8]" in lines
    assert "stp x0, x1, [sp, #-16]!" in lines and "ldp x0, x1, [sp], #16" in lines

def test_chaos_roll_default_state():
    lines = _body(_gen("if ? 30 then done"))
    i = lines.index("ldr x1, [x19, #8]")
    assert lines[i:i + 4] == ["ldr x1, [x19, #8]", "cmp x1, #0", "b.ne .Lskp0", "mrs x1, cntvct_el0"]
    assert "ldr x2, =0x9E3779B97F4A7C15" in lines
    assert "eor x1, x1, x1, lsr #33" in lines
    assert "str x1, [x19, #8]" in lines
    assert lines[lines.index("cmp x1, #30") + 1] == "b.hs .Lif0"

def test_chaos_roll_uses_math_object():
    res = _gen("class Rng is seed state done local math = new Rng if ? 30 then done")
    assert "ldr x1, [x12, #8]" in _body(res)
    assert res.diagnostics == []

def test_chaos_roll_warns_on_scalar_math():
    res = _gen("local math 5 if ? 30 then done")
    assert "str x1, [x12, #8]" in _body(res)
    assert "math" in res.diagnostics[0].message

def test_raw_and_intel_blocks():
    lines = _body(_gen("@asm mov x0, 1 done @intel mov eax, 4 done"))
    assert "mov x0 , #1" in lines
    i = lines.index(".intel_syntax noprefix")
    assert lines[i:i + 3] == [".intel_syntax noprefix", "mov eax , 4", ".att_syntax"]

def test_generation_is_deterministic():
    src = 'class P is a b done local p = new P p.a = 1 if ? 50 then print p.a done print "x"'
    assert _gen(src).text == _gen(src).text

def test_print_var_requires_known_base():
    res = generate([PrintVar(Path(("p", "a")))])
    assert ".Lpp0:" not in res.text
    assert res.context.next_label == 0

def test_empty_path_falls_back_to_x0():
    res = generate([If(Path(()), TokenKind.GREATER, 3.0, ())])
    assert "mov x1, x0" in _body(res)
    assert "Variable desconocida" in res.diagnostics[0].message

def test_escape_ascii_control_characters():
    assert escape_ascii("a\nb") == "a\\nb"
    assert escape_ascii("\t\r") == "\\t\\r"
    assert escape_ascii("x\x01y\x7f") == "x\\001y\\177"
    assert escape_ascii("ñ") == "ñ"

def test_multiline_string_stays_on_one_line():
    res = _gen('print "a\nb"')
    lines = _body(res)
    assert '.Lstr0: .ascii "a\\nb\\n"' in lines
    assert lines[lines.index("adr x1, .Lstr0") + 1] == "mov x2, #4"

def test_top_level_file_is_on_include_stack():
    res = _gen("local x 1", filename="src/main.hmr")
    assert res.context.include_stack == ["main"]
    assert _gen("local x 1").context.include_stack == []
