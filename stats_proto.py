"""
StatsService protobuf messages

Message classes for the V2Ray/Xray StatsService QueryStats call, built at
import time from a FileDescriptorProto:

    message QueryStatsRequest  { string pattern = 1; bool reset = 2; }
    message Stat               { string name = 1; int64 value = 2; }
    message QueryStatsResponse { repeated Stat stat = 1; }

V2Ray and Xray use the same field numbers and differ only in the proto
package, which appears in the RPC method path (see config.STATS_SERVICES).
"""
from google.protobuf import descriptor_pb2, descriptor_pool
from google.protobuf.message_factory import GetMessageClass

PROTO_PACKAGE = 'v2stat.stats.command'

_Field = descriptor_pb2.FieldDescriptorProto


def _add_field(message, name, number, field_type, label=_Field.LABEL_OPTIONAL, type_name=None):
    field = message.field.add(name=name, number=number, type=field_type, label=label)
    if type_name:
        field.type_name = type_name


def _build_file():
    file_proto = descriptor_pb2.FileDescriptorProto(
        name='v2stat/stats_command.proto',
        package=PROTO_PACKAGE,
        syntax='proto3',
    )

    request = file_proto.message_type.add(name='QueryStatsRequest')
    _add_field(request, 'pattern', 1, _Field.TYPE_STRING)
    _add_field(request, 'reset', 2, _Field.TYPE_BOOL)

    stat = file_proto.message_type.add(name='Stat')
    _add_field(stat, 'name', 1, _Field.TYPE_STRING)
    _add_field(stat, 'value', 2, _Field.TYPE_INT64)

    response = file_proto.message_type.add(name='QueryStatsResponse')
    _add_field(response, 'stat', 1, _Field.TYPE_MESSAGE,
               label=_Field.LABEL_REPEATED, type_name=f'.{PROTO_PACKAGE}.Stat')

    return file_proto


# Private pool: never collides with descriptors registered by other packages
_pool = descriptor_pool.DescriptorPool()
_pool.AddSerializedFile(_build_file().SerializeToString())

QueryStatsRequest = GetMessageClass(_pool.FindMessageTypeByName(f'{PROTO_PACKAGE}.QueryStatsRequest'))
Stat = GetMessageClass(_pool.FindMessageTypeByName(f'{PROTO_PACKAGE}.Stat'))
QueryStatsResponse = GetMessageClass(_pool.FindMessageTypeByName(f'{PROTO_PACKAGE}.QueryStatsResponse'))
