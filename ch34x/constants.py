"""CH34x vendor request codes, register addresses and USB identifiers."""

# Vendor requests
REQUEST_READ_VERSION = 0x5F
REQUEST_READ_REGISTRY = 0x95
REQUEST_WRITE_REGISTRY = 0x9A
REQUEST_SERIAL_INITIATION = 0xA1

# Registers
REG_MODEM_CTRL = 0xA4
REG_BAUD_FACTOR = 0x1312
REG_BAUD_OFFSET = 0x0F2C
REG_BAUD_LOW = 0x2518
REG_STATUS = 0x0706

# Line control (written to REG_BAUD_LOW)
LCR_ENABLE_RX = 0x80
LCR_ENABLE_TX = 0x40
LCR_CS8 = 0x03

# Modem control bits, active low on the wire
SCL_DTR = 0x20
SCL_RTS = 0x40

# Serial initiation handshake
SERIAL_INIT_VALUE = 0x501F
SERIAL_INIT_INDEX = 0xD90A

# Status replies are two bytes long
STATUS_REPLY_LENGTH = 2

# Baud rate generator
BAUD_BASE_FACTOR = 1532620800
BAUD_DIVISOR_MAX = 3
BAUD_FACTOR_LIMIT = 0xFFF0
BAUD_DIVISOR_PRESENT = 0x0080
DEFAULT_BAUD_RATE = 9600

# USB identifiers for device selection
VENDOR_ID_QUINHENG = 0x1A86
PRODUCT_ID_CH340 = 0x7523
PRODUCT_ID_CH341A = 0x5523
PRODUCT_IDS = (PRODUCT_ID_CH340, PRODUCT_ID_CH341A)
