from .C2S_0x00 import C2S_0x00
from .C2S_0x01 import C2S_0x01
from .S2C_0x00 import S2C_0x00
from .S2C_0x01 import S2C_0x01
