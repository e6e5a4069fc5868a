import pytest

from src.hamerc.compiler import compile_text
from src.hamerc.emulator import run, EmulatorError

def _run(src, **kw):
    res = compile_text(src)
    return run(res.asm, **kw)

def test_update_and_print():
    out = _run("local x = 5\nx = x + 3\nprint x")
    assert out.text == "8\n"
    assert out.exit_code == 0

def test_object_field_roundtrip():
    out = _run("class Pt is x y done\nlocal p = new Pt\np.x = 7\nprint p.x")
    assert out.text == "7\n"

@pytest.mark.parametrize("value,expected", [(11, "big\n"), (9, ""), (10, "")])
def test_if_greater(value, expected):
    out = _run(f'local x = {value}\nif x > 10 then print "big" done')
    assert out.text == expected
    assert out.exit_code == 0

def test_equal_and_less():
    src = 'local x 3 if x == 3 then print "eq" done if x < 3 then print "lt" done if x < 4 then print "lt4" done'
    assert _run(src).text == "eq\nlt4\n"

@pytest.mark.parametrize("value", [0, 7, 10, 4095, 123456789])
def test_print_numbers(value):
    assert _run(f"local x = {value} print x").text == f"{value}\n"

def test_print_negative():
    assert _run("local x 0 x = x - 5 print x").text == "-5\n"
    assert _run("local x 3 x = x - 1000 print x").text == "-997\n"

def test_while_counts():
    src = "local i 0 while i < 5 do print i i = i + 1 done"
    assert _run(src).text == "0\n1\n2\n3\n4\n"

def test_nested_blocks():
    src = 'local i 0 while i < 4 do if i == 2 then print "two" done i = i + 1 done print i'
    assert _run(src).text == "two\n4\n"

def test_strings_and_utf8():
    out = _run('print "hola" print "año"')
    assert out.text == "hola\naño\n"

def test_allocations_are_spaced_by_class_size():
    src = "class P is a b c done local p = new P local q = new P local d 0 @asm sub x14, x13, x12 done print d"
    assert _run(src).text == "24\n"

def test_fields_are_independent():
    src = "class P is a b done local p = new P local q = new P p.a = 1 p.b = 2 q.a = 3 q.b = p.b + 40 print p.a print p.b print q.a print q.b"
    # la ruta repetida tras "=" se ignora: q.b = q.b + 40
    assert _run(src).text == "1\n2\n3\n40\n"

def test_print_preserves_registers():
    src = "local x 5 print x x = x + 1 print x"
    assert _run(src).text == "5\n6\n"

def test_raw_asm_exit_code():
    # cada bloque @asm produce una sola línea
    assert _run("@asm mov x0, 3 done @asm mov x8, 93 done @asm svc 0 done").exit_code == 3

def test_chaos_extremes():
    src = 'local i 0 local hits 0 while i < 50 do if ? {} then hits = hits + 1 done i = i + 1 done print hits'
    assert _run(src.format(0)).text == "0\n"
    assert _run(src.format(100)).text == "50\n"

@pytest.mark.parametrize("counter", [1, 0xDEADBEEF, 0x123456789ABC])
def test_chaos_fifty_percent(counter):
    src = "local i 0 local hits 0 while i < 2000 do if ? 50 then hits = hits + 1 done i = i + 1 done print hits"
    hits = int(_run(src, counter=counter).text)
    assert 700 < hits < 1300

def test_chaos_is_deterministic_for_a_seed():
    src = "local i 0 local hits 0 while i < 100 do if ? 30 then hits = hits + 1 done i = i + 1 done print hits"
    assert _run(src, counter=42).text == _run(src, counter=42).text

def test_chaos_with_math_object():
    src = "class Rng is seed state done local math = new Rng local i 0 local hits 0 while i < 20 do if ? 100 then hits = hits + 1 done i = i + 1 done print hits"
    assert _run(src).text == "20\n"

def test_infinite_loop_hits_step_limit():
    with pytest.raises(EmulatorError):
        _run("local i 0 while i < 1 do done", max_steps=1000)

def test_condition_without_variable_is_skipped():
    res = compile_text('if 5 > 3 then print "a" done while > 3 do done print "b"')
    assert len(res.diagnostics) == 2
    assert run(res.asm).text == "b\n"

def test_strings_with_control_characters():
    assert _run('print "a\nb"').text == "a\nb\n"
    assert _run('print "x\ty\x01"').text == "x\ty\x01\n"
