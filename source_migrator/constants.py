"""Centralized constants for the source migrator."""

# SSH
DEFAULT_SSH_PORT = 22

# Host identifier that means "run on this machine" (PASE on the IBM i itself)
LOCAL_HOST_ID = "local"

# Coded character set identifiers
UTF8_CCSID = 1208  # Stream file encoding
INVARIANT_CCSID = 37  # EBCDIC, used when casting catalog names

# CPYTOSTMF fixed options
STMF_OPTION_REPLACE = "*REPLACE"
END_OF_LINE_LF = "*LF"

# The job's scratch library; always exists, never looked up
SCRATCH_LIBRARY = "QTEMP"

# Catalog objects
PARTITION_CATALOG = "QSYS2.SYSPARTITIONSTAT"
COLUMN_CATALOG = "QSYS2.SYSCOLUMNS"
DUMMY_TABLE = "SYSIBM.SYSDUMMY1"

# Catalog columns
COL_LIBRARY = "SYSTEM_TABLE_SCHEMA"
COL_CONTAINER = "SYSTEM_TABLE_NAME"
COL_MEMBER = "SYSTEM_TABLE_MEMBER"
COL_SOURCE_TYPE = "SOURCE_TYPE"

# Result set aliases
ALIAS_CONTAINER = "SOURCEPF"
ALIAS_MEMBER = "MEMBER"
ALIAS_SOURCE_TYPE = "SOURCETYPE"
ALIAS_LIBRARY = "LIBRARY"

# Host utilities (PASE)
PASE_SYSTEM_COMMAND = "/QOpenSys/usr/bin/system"
DB2UTIL_COMMAND = "/QOpenSys/pkgs/bin/db2util"

# IBM i object names: 1-10 chars, no leading digit
OBJECT_NAME_MAX_LENGTH = 10
OBJECT_NAME_PATTERN = r"^[A-Z$#@][A-Z0-9$#@_.]{0,9}$"

