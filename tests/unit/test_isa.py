import pytest
from src.hamerc.isa import cond, negate, holds, mov_imm, arith_imm, cmp_imm, mem, fits_mov, fits_arith

def test_negations_are_involutive():
    for c in ("eq", "ne", "hs", "lo", "hi", "ls", "ge", "lt", "gt", "le", "mi", "pl", "vs", "vc"):
        assert negate(negate(c)) == c
    assert negate("gt") == "le"
    assert cond("cs").name == "hs"
    with pytest.raises(KeyError):
        cond("zz")

def test_holds_signed_and_unsigned():
    # 1 - 2: N=1, Z=0, C=0, V=0
    assert holds("lt", True, False, False, False)
    assert holds("lo", True, False, False, False)
    assert not holds("ge", True, False, False, False)
    assert holds("le", False, True, True, False)
    assert holds("hs", False, False, True, False)

def test_immediate_forms():
    assert fits_mov(65535) and not fits_mov(65536)
    assert fits_arith(4095) and not fits_arith(-1)
    assert mov_imm("x12", 5) == ["mov x12, #5"]
    assert mov_imm("x12", -5) == ["ldr x12, =0xFFFFFFFFFFFFFFFB"]
    assert arith_imm("sub", "x1", "x1", 5000, scratch="x2") == ["mov x2, #5000", "sub x1, x1, x2"]
    assert cmp_imm("x1", 7, scratch="x2") == ["cmp x1, #7"]

def test_mem_operand():
    assert mem("x12") == "[x12]"
    assert mem("x19", 8) == "[x19, #8]"
