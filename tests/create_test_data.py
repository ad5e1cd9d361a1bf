"""
Builders for G85 map text used across the test suite.
This is a utility module, not a test itself.
"""
from typing import Iterable, Optional

SAMPLE_MAP = """<?xml version="1.0" encoding="UTF-8"?>
<Map xmlns:semi="http://www.semi.org" SubstrateNumber="7" SubstrateType="Wafer" SubstrateId="LOT42-07" FormatRevision="SEMI G85 0703">
  <Device BinType="ASCII" SupplierName="Acme Fab" LotId="LOT42" DeviceSizeX="4.5" DeviceSizeY="5.2" NullBin="FF" ProductId="PX-9" Rows="3" Columns="4" MapType="Array" OriginLocation="0" Orientation="180" WaferSize="200" CreateDate="20240105093000" LastModified="20240106101500">
    <ReferenceDevice ReferenceDeviceX="1" ReferenceDeviceY="1"/>
    <Bin BinCode="01" BinQuality="Pass" BinDescription="Good Die" BinCount="6"/>
    <Bin BinCode="02" BinQuality="Fail" BinDescription="Open/Short" BinCount="2"/>
    <Bin BinCode="EF" BinQuality="Fail" BinDescription="Visual Defect" BinCount="1"/>
    <Data MapName="Map" MapVersion="1">
      <Row><![CDATA[FF0101FF]]></Row>
      <Row><![CDATA[01FA02EF]]></Row>
      <Row><![CDATA[FF010201]]></Row>
    </Data>
  </Device>
</Map>
"""


def build_map(
    rows: Iterable[str],
    row_count: Optional[str] = None,
    column_count: Optional[str] = None,
    bins: Iterable[tuple] = (),
    lot_id: str = "LOT1",
    root_tag: str = "Map",
    with_device: bool = True,
) -> str:
    """Builds a small flat map document. ``bins`` holds (code, quality, description, count) tuples."""
    rows = list(rows)
    device_attrs = f'LotId="{lot_id}"'
    if row_count is not None:
        device_attrs += f' Rows="{row_count}"'
    if column_count is not None:
        device_attrs += f' Columns="{column_count}"'

    parts = [f'<{root_tag} SubstrateNumber="1" SubstrateType="Wafer" SubstrateId="S1" FormatRevision="1.0">']
    if with_device:
        parts.append(f'  <Device {device_attrs}/>')
    for code, quality, description, count in bins:
        parts.append(f'  <Bin BinCode="{code}" BinQuality="{quality}" BinDescription="{description}" BinCount="{count}"/>')
    for payload in rows:
        parts.append(f'  <Row><![CDATA[{payload}]]></Row>')
    parts.append(f'</{root_tag}>')
    return "\n".join(parts)
