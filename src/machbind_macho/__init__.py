from .mach_header import *
from .structs import *
from libmachbind.structs import Struct
