from typing import Annotated, Union

import pydantic as pdt

import shiftlog.backends.memory as memory
import shiftlog.backends.sqlite as sqlite

# The core never branches on which one is configured
BackendKind = Annotated[
    Union[memory.MemoryBackend, sqlite.SqliteBackend],
    pdt.Field(discriminator="kind"),
]
