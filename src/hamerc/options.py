'''
opciones de compilación (arena, módulos, intérprete externo, salida)
'''

from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple

DEFAULT_HEAP_SIZE = 4096
DEFAULT_MODULE_EXT = ".hmr"
DEFAULT_OUTPUT = "out.s"

@dataclass(frozen=True)
class Options:
    """Parámetros de una compilación.

    - heap_size: bytes pedidos a mmap en el prólogo (arena del bump allocator)
    - module_ext: extensión que 'Get <nombre>' añade al nombre del módulo
    - include_paths: directorios donde se busca el módulo, en orden
    - interpreter: prefijo del comando para bloques @python; el script va como último argumento
    - output: nombre del archivo .s que escribe la CLI
    """
    heap_size: int = DEFAULT_HEAP_SIZE
    module_ext: str = DEFAULT_MODULE_EXT
    include_paths: Tuple[str, ...] = (".",)
    interpreter: Tuple[str, ...] = ("python3", "-c")
    output: str = DEFAULT_OUTPUT

DEFAULT_OPTIONS = Options()
