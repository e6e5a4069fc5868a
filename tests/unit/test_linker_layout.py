from src.hamerc.linker import first_pass, unescape

def test_labels_and_text_layout():
    src = """
    .global _start
    .section .text
    _start:
      mov x0, #1
      add x1, x0, #2   // comentario
    .Lloop:
      b .Lloop
    """
    r = first_pass(src, base_text=0x0)
    assert not r.diagnostics
    assert r.symtab["_start"] == 0
    assert r.symtab[".Lloop"] == 8
    assert [i.mnemonic for i in r.code] == ["mov", "add", "b"]
    assert r.code[1].operands == ("x1", "x0", "#2")
    assert r.index_of(8) == 2

def test_data_interleaved_with_text():
    src = '.text\nmov x0, #1\n.section .data\n.Lstr0: .ascii "a,b\\n"\n.section .text\nadr x1, .Lstr0\n'
    r = first_pass(src, base_data=0x1000)
    assert r.data == b"a,b\n"
    assert r.symtab[".Lstr0"] == 0x1000
    assert len(r.code) == 2

def test_data_directives():
    src = '.data\nA: .byte 1, 2\n.balign 8\nB: .quad -1\n.asciz "Z"\n.space 3\n'
    r = first_pass(src, base_data=0)
    assert r.symtab["B"] == 8
    assert r.data == b"\x01\x02" + b"\x00" * 6 + b"\xff" * 8 + b"Z\x00" + b"\x00" * 3

def test_errors_and_warnings():
    src = "x:\nx:\n.data\nmov x0, #1\n.text\n.word 3\n.intel_syntax noprefix\n"
    r = first_pass(src)
    sev = [(d.severity, d.line) for d in r.diagnostics]
    assert ("error", 2) in sev
    assert ("error", 4) in sev
    assert ("error", 6) in sev
    assert ("advertencia", 7) in sev

def test_unescape():
    assert unescape('a\\"b\\\\c') == b'a"b\\c'
    assert unescape("\\x41\\t") == b"A\t"
    assert unescape("ñ") == "ñ".encode("utf-8")

def test_unescape_octal():
    assert unescape("\\101\\0") == b"A\x00"
    assert unescape("\\0012") == b"\x012"
    assert unescape("a\\nb") == b"a\nb"
