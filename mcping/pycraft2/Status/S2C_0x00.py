from ...pycraft2.packet import S2CPacket, States, DataTypes
from ...status import StatusRecord, decode_status


class S2C_0x00(S2CPacket):
    """
    Status Response Packet (0x00)

    Data:
        - JSON Response | String (32767) | See (Server List Ping#Status Response)[https://wiki.vg/Server_List_Ping#Status_Response]; as with all strings, this is prefixed by its length as a VarInt.
    """

    @staticmethod
    def _info():
        return {
            "name": "Status Response",
            "id": 0x00,
            "state": States.STATUS,
        }

    @staticmethod
    def _dataTypes():
        return {
            "json_response": DataTypes.STRING,
        }

    def read_status(self) -> StatusRecord:
        """Decode the buffered JSON body into a status record"""
        return decode_status(self.read(len(self)))
