"""
macrotape — a macro layer over an eight-instruction byte-tape language.

  source ─▶ lexer ─▶ scope tree ─▶ expander ─▶ linked program ─▶ tape machine
                                                     │
                                                     └─▶ artifact (BF FF BB FF)

| Layer                   | Purpose                                     |
<------------------------ + ------------------------------------------- >
| **Lexer**               | Source text → nested lexical items          |
| **Scope tree**          | Lexically scoped macro definitions, `use`   |
| **Expander**            | Memoized, cycle-checked macro inlining      |
| **Linker**              | Bracket matching and jump targets           |
| **Artifact codec**      | Compact binary form of a linked program     |
| **Tape machine**        | Wrapping byte cells, input, output, dumps   |
| **Visualization**       | NetworkX / Graphviz views of the scope tree |
| **Hash, diff, logbook** | Artifact identity and signed provenance     |
"""

from . import core as _core
from . import lexer as _lexer
from . import scopes as _scopes
from . import compiler as _compiler
from . import machine as _machine
from . import analysis as _analysis
from . import bitcode as _bitcode
from . import crypto as _crypto
from .cli import main, parse_args, run_repl
from ..constants import KEY_FILE, LOGBOOK_FILE, PUB_FILE

from .core import *
from .lexer import *
from .scopes import *
from .compiler import *
from .machine import *
from .analysis import *
from .bitcode import *
from .crypto import *

__all__ = []
for module in (_core, _lexer, _scopes, _compiler, _machine, _analysis, _bitcode, _crypto):
    __all__.extend(getattr(module, '__all__', []))
__all__ += ['main', 'parse_args', 'run_repl', 'KEY_FILE', 'LOGBOOK_FILE', 'PUB_FILE']
__all__ = list(dict.fromkeys(__all__))
