from src.hamerc.diagnostics import error, warning, fatal, CompileError

def test_error_str():
    d = error("etiqueta redefinida", line=12, col=8, file="out.s", hint="renombre una")
    s = str(d)
    assert "out.s:12:8:" in s
    assert "ERROR: etiqueta redefinida" in s
    assert "(pista: renombre una)" in s

def test_warning_without_location():
    d = warning("Variable desconocida: y")
    assert d.severity == "advertencia"
    assert str(d) == "ADVERTENCIA: Variable desconocida: y"

def test_fatal_wraps_error():
    ex = fatal("Inclusión cíclica: a -> a", file="a.hmr")
    assert isinstance(ex, CompileError)
    assert ex.diagnostic.severity == "error"
    assert str(ex) == "a.hmr: ERROR: Inclusión cíclica: a -> a"
