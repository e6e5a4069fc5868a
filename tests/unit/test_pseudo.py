from src.hamerc.linker import first_pass
from src.hamerc.pseudo import expand

def _expand(src):
    return [(i.mnemonic, i.operands) for i in expand(first_pass(".text\n" + src).code)]

def test_compare_aliases():
    assert _expand("cmp x1, #0\ncmn w2, w3\ntst x4, #1") == [
        ("subs", ("xzr", "x1", "#0")),
        ("adds", ("wzr", "w2", "w3")),
        ("ands", ("xzr", "x4", "#1")),
    ]

def test_mov_forms():
    assert _expand("mov x1, x2\nmov x1, sp\nmov w2, #10\nmovz x3, #4") == [
        ("orr", ("x1", "xzr", "x2")),
        ("add", ("x1", "sp", "#0")),
        ("mov", ("w2", "#10")),
        ("mov", ("x3", "#4")),
    ]

def test_neg_mvn_shift():
    assert _expand("neg x0, x0\nmvn x1, x2\nlsr x3, x4, #2") == [
        ("sub", ("x0", "xzr", "x0")),
        ("orn", ("x1", "xzr", "x2")),
        ("orr", ("x3", "xzr", "x4", "lsr #2")),
    ]

def test_literal_pool_loads():
    assert _expand("ldr x2, =0x9E3779B97F4A7C15\nldr x1, =msg\nldr x1, [x2]") == [
        ("mov", ("x2", "#0x9E3779B97F4A7C15")),
        ("adr", ("x1", "msg")),
        ("ldr", ("x1", "[x2]")),
    ]

def test_expansion_preserves_indices():
    src = "cmp x1, #0\nb.ne l\nmov x1, x2\nl:\nnop"
    code = first_pass(".text\n" + src).code
    out = expand(code)
    assert len(out) == len(code)
    assert [i.line for i in out] == [i.line for i in code]
