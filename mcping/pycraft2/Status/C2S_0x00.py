from ...pycraft2.packet import C2SPacket, States


class C2S_0x00(C2SPacket):
    """
    Status Request (0x00)

    Data:
        - None
    """

    @staticmethod
    def _info():
        return {
            "name": "Status Request",
            "id": 0x00,
            "state": States.STATUS,
        }

    @staticmethod
    def _dataTypes():
        return {}
