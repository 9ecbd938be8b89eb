"""Alarm and fault flags reported by the ERROR_CODE (0x98) command.

The reply packs one flag per bit across payload bytes 4-10.
:data:`ERROR_CODE_TABLE` maps each (byte, bit) to its flag and is
walked in declaration order, so decoded flags always come out in
table order rather than bit order.

Example:
    >>> from dalybms.error_codes import ErrorCode, decode_error_codes
    >>> frame = bytes([0xA5, 0x40, 0x98, 0x08, 0x01, 0, 0, 0, 0, 0, 0, 0, 0x86])
    >>> decode_error_codes(frame)
    (<ErrorCode.CELL_VOLT_HIGH_LEVEL1: 'Cell voltage is too high (Level 1)'>,)
"""

from enum import Enum

from dalybms.protocol import read_bit


class ErrorCode(Enum):
    """A single BMS alarm or fault; the value is a readable description."""

    CELL_VOLT_HIGH_LEVEL1 = "Cell voltage is too high (Level 1)"
    CELL_VOLT_HIGH_LEVEL2 = "Cell voltage is too high (Level 2)"
    CELL_VOLT_LOW_LEVEL1 = "Cell voltage is too low (Level 1)"
    CELL_VOLT_LOW_LEVEL2 = "Cell voltage is too low (Level 2)"
    SUM_VOLT_HIGH_LEVEL1 = "Total voltage is too high (Level 1)"
    SUM_VOLT_HIGH_LEVEL2 = "Total voltage is too high (Level 2)"
    SUM_VOLT_LOW_LEVEL1 = "Total voltage is too low (Level 1)"
    SUM_VOLT_LOW_LEVEL2 = "Total voltage is too low (Level 2)"
    CHARGE_TEMP_HIGH_LEVEL1 = "Charging temperature too high (Level 1)"
    CHARGE_TEMP_HIGH_LEVEL2 = "Charging temperature too high (Level 2)"
    CHARGE_TEMP_LOW_LEVEL1 = "Charging temperature too low (Level 1)"
    CHARGE_TEMP_LOW_LEVEL2 = "Charging temperature too low (Level 2)"
    DISCHARGE_TEMP_HIGH_LEVEL1 = "Discharging temperature too high (Level 1)"
    DISCHARGE_TEMP_HIGH_LEVEL2 = "Discharging temperature too high (Level 2)"
    DISCHARGE_TEMP_LOW_LEVEL1 = "Discharging temperature too low (Level 1)"
    DISCHARGE_TEMP_LOW_LEVEL2 = "Discharging temperature too low (Level 2)"
    CHARGE_OVERCURRENT_LEVEL1 = "Charge overcurrent (Level 1)"
    CHARGE_OVERCURRENT_LEVEL2 = "Charge overcurrent (Level 2)"
    DISCHARGE_OVERCURRENT_LEVEL1 = "Discharge overcurrent (Level 1)"
    DISCHARGE_OVERCURRENT_LEVEL2 = "Discharge overcurrent (Level 2)"
    SOC_HIGH_LEVEL1 = "SOC too high (Level 1)"
    SOC_HIGH_LEVEL2 = "SOC too high (Level 2)"
    SOC_LOW_LEVEL1 = "SOC too low (Level 1)"
    SOC_LOW_LEVEL2 = "SOC too low (Level 2)"
    DIFF_VOLT_LEVEL1 = "Excessive voltage difference between cells (Level 1)"
    DIFF_VOLT_LEVEL2 = "Excessive voltage difference between cells (Level 2)"
    DIFF_TEMP_LEVEL1 = "Excessive temperature difference between sensors (Level 1)"
    DIFF_TEMP_LEVEL2 = "Excessive temperature difference between sensors (Level 2)"
    CHARGE_MOS_TEMP_HIGH_ALARM = "Charging MOSFET temperature too high"
    DISCHARGE_MOS_TEMP_HIGH_ALARM = "Discharging MOSFET temperature too high"
    CHARGE_MOS_TEMP_SENSOR_ERR = "Charging MOSFET temperature sensor failure"
    DISCHARGE_MOS_TEMP_SENSOR_ERR = "Discharging MOSFET temperature sensor failure"
    CHARGE_MOS_ADHESION_ERR = "Charging MOSFET adhesion failure"
    DISCHARGE_MOS_ADHESION_ERR = "Discharging MOSFET adhesion failure"
    CHARGE_MOS_OPEN_CIRCUIT_ERR = "Charging MOSFET open circuit failure"
    DISCHARGE_MOS_OPEN_CIRCUIT_ERR = "Discharging MOSFET open circuit failure"
    AFE_COLLECT_CHIP_ERR = "AFE acquisition chip failure"
    VOLTAGE_COLLECT_DROPPED = "Cell voltage collection circuit failure"
    CELL_TEMP_SENSOR_ERR = "Cell temperature sensor failure"
    EEPROM_ERR = "EEPROM storage failure"
    RTC_ERR = "RTC clock failure"
    PRECHARGE_FAILURE = "Pre-charge failure"
    COMMUNICATION_FAILURE = "Communication failure"
    INTERNAL_COMMUNICATION_FAILURE = "Internal communication failure"
    CURRENT_MODULE_FAULT = "Current detection module failure"
    SUM_VOLTAGE_DETECT_FAULT = "Total voltage detection module failure"
    SHORT_CIRCUIT_PROTECT_FAULT = "Short circuit protection failure"
    LOW_VOLT_FORBIDDEN_CHARGE_FAULT = "Low voltage forbids charging"

    def __str__(self) -> str:
        return self.value


# (frame byte offset, bit position, flag).  Order is significant: byte 6
# lists bit 1 before bit 0, exactly as the device documentation does.
ERROR_CODE_TABLE: tuple[tuple[int, int, ErrorCode], ...] = (
    (4, 0, ErrorCode.CELL_VOLT_HIGH_LEVEL1),
    (4, 1, ErrorCode.CELL_VOLT_HIGH_LEVEL2),
    (4, 2, ErrorCode.CELL_VOLT_LOW_LEVEL1),
    (4, 3, ErrorCode.CELL_VOLT_LOW_LEVEL2),
    (4, 4, ErrorCode.SUM_VOLT_HIGH_LEVEL1),
    (4, 5, ErrorCode.SUM_VOLT_HIGH_LEVEL2),
    (4, 6, ErrorCode.SUM_VOLT_LOW_LEVEL1),
    (4, 7, ErrorCode.SUM_VOLT_LOW_LEVEL2),
    (5, 0, ErrorCode.CHARGE_TEMP_HIGH_LEVEL1),
    (5, 1, ErrorCode.CHARGE_TEMP_HIGH_LEVEL2),
    (5, 2, ErrorCode.CHARGE_TEMP_LOW_LEVEL1),
    (5, 3, ErrorCode.CHARGE_TEMP_LOW_LEVEL2),
    (5, 4, ErrorCode.DISCHARGE_TEMP_HIGH_LEVEL1),
    (5, 5, ErrorCode.DISCHARGE_TEMP_HIGH_LEVEL2),
    (5, 6, ErrorCode.DISCHARGE_TEMP_LOW_LEVEL1),
    (5, 7, ErrorCode.DISCHARGE_TEMP_LOW_LEVEL2),
    (6, 1, ErrorCode.CHARGE_OVERCURRENT_LEVEL2),
    (6, 0, ErrorCode.CHARGE_OVERCURRENT_LEVEL1),
    (6, 2, ErrorCode.DISCHARGE_OVERCURRENT_LEVEL1),
    (6, 3, ErrorCode.DISCHARGE_OVERCURRENT_LEVEL2),
    (6, 4, ErrorCode.SOC_HIGH_LEVEL1),
    (6, 5, ErrorCode.SOC_HIGH_LEVEL2),
    (6, 6, ErrorCode.SOC_LOW_LEVEL1),
    (6, 7, ErrorCode.SOC_LOW_LEVEL2),
    (7, 0, ErrorCode.DIFF_VOLT_LEVEL1),
    (7, 1, ErrorCode.DIFF_VOLT_LEVEL2),
    (7, 2, ErrorCode.DIFF_TEMP_LEVEL1),
    (7, 3, ErrorCode.DIFF_TEMP_LEVEL2),
    (8, 0, ErrorCode.CHARGE_MOS_TEMP_HIGH_ALARM),
    (8, 1, ErrorCode.DISCHARGE_MOS_TEMP_HIGH_ALARM),
    (8, 2, ErrorCode.CHARGE_MOS_TEMP_SENSOR_ERR),
    (8, 3, ErrorCode.DISCHARGE_MOS_TEMP_SENSOR_ERR),
    (8, 4, ErrorCode.CHARGE_MOS_ADHESION_ERR),
    (8, 5, ErrorCode.DISCHARGE_MOS_ADHESION_ERR),
    (8, 6, ErrorCode.CHARGE_MOS_OPEN_CIRCUIT_ERR),
    (8, 7, ErrorCode.DISCHARGE_MOS_OPEN_CIRCUIT_ERR),
    (9, 0, ErrorCode.AFE_COLLECT_CHIP_ERR),
    (9, 1, ErrorCode.VOLTAGE_COLLECT_DROPPED),
    (9, 2, ErrorCode.CELL_TEMP_SENSOR_ERR),
    (9, 3, ErrorCode.EEPROM_ERR),
    (9, 4, ErrorCode.RTC_ERR),
    (9, 5, ErrorCode.PRECHARGE_FAILURE),
    (9, 6, ErrorCode.COMMUNICATION_FAILURE),
    (9, 7, ErrorCode.INTERNAL_COMMUNICATION_FAILURE),
    (10, 0, ErrorCode.CURRENT_MODULE_FAULT),
    (10, 1, ErrorCode.SUM_VOLTAGE_DETECT_FAULT),
    (10, 2, ErrorCode.SHORT_CIRCUIT_PROTECT_FAULT),
    (10, 3, ErrorCode.LOW_VOLT_FORBIDDEN_CHARGE_FAULT),
)


def decode_error_codes(frame: bytes) -> tuple[ErrorCode, ...]:
    """Return the flags set in an already validated ERROR_CODE frame."""
    return tuple(
        code
        for offset, bit, code in ERROR_CODE_TABLE
        if read_bit(frame[offset], bit)
    )
