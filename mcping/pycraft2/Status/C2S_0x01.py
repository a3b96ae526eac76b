from ...pycraft2.packet import C2SPacket, States, DataTypes


class C2S_0x01(C2SPacket):
    """
    Ping Request (0x01)

    Data:
        - Payload | Long | Any number, the server sends it back unchanged
    """

    @staticmethod
    def _info():
        return {
            "name": "Ping Request",
            "id": 0x01,
            "state": States.STATUS,
        }

    @staticmethod
    def _dataTypes():
        return {
            "payload": DataTypes.LONG,
        }
