from ...errors import ProtocolError
from ...pycraft2.packet import S2CPacket, States, DataTypes


class S2C_0x01(S2CPacket):
    """
    Ping Response (0x01) sent by the server to the client.

    Data:
        - Payload | Long | The client's payload, sent in the ping packet.
    """

    @staticmethod
    def _info():
        return {
            "name": "Ping Response",
            "id": 0x01,
            "state": States.STATUS,
        }

    @staticmethod
    def _dataTypes():
        return {
            "payload": DataTypes.LONG,
        }

    async def read_response(self) -> int:
        await self.read_header()
        if self.remaining != 8:
            raise ProtocolError(
                f"{self.name} should carry 8 bytes, the packet has {self.remaining}"
            )

        await self.read_body()
        return self.read_long()
