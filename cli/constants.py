"""CLI constants and configuration."""

from prompt_toolkit.styles import Style

COMMANDS = [
    "identity",
    "register-key",
    "records",
    "approvals",
    "open",
    "history",
    "transfer",
    "watch",
    "clear-cache",
    "purge-cache",
    "clear",
    "exit",
    "help",
]

STYLE = Style.from_dict(
    {
        "prompt": "#2E9CCA bold",
        "command": "#0088ff bold",
    }
)

TEAL = "\033[38;2;46;156;202m"
GREEN = "\033[92m"
RESET = "\033[0m"

LOGO = f"""{TEAL}
 ███╗   ███╗███████╗██████╗ ██╗     ██╗███╗   ██╗██╗  ██╗
 ████╗ ████║██╔════╝██╔══██╗██║     ██║████╗  ██║██║ ██╔╝
 ██╔████╔██║█████╗  ██║  ██║██║     ██║██╔██╗ ██║█████╔╝
 ██║╚██╔╝██║██╔══╝  ██║  ██║██║     ██║██║╚██╗██║██╔═██╗
 ██║ ╚═╝ ██║███████╗██████╔╝███████╗██║██║ ╚████║██║  ██╗
 ╚═╝     ╚═╝╚══════╝╚═════╝ ╚══════╝╚═╝╚═╝  ╚═══╝╚═╝  ╚═╝
{RESET}"""

WELCOME_TITLE = "MedLink CLI - Encrypted Medical Record Retrieval"
WELCOME_HELP = "Type 'help' for commands or 'exit' to quit.\n"

PROMPT_TEXT = "medlink> "

DEFAULT_OUTPUT_DIR = "downloads"

RECORDS_PAGE_SIZE = 10

HELP_TEXT = """Available commands:
  identity <name> <email>                Set the doctor identity used for records and transfers
  register-key                           Publish the public key of MEDLINK_PRIVATE_KEY for this doctor
  records sent|received [page]           List records this doctor sent or received
  approvals [page]                       List records awaiting this doctor's approval
  open <record_id> [output_dir]          Fetch, decrypt and extract a record (default: downloads/)
  history <record_id>                    Show the transfer chain of a record
  transfer <record_id> <doctor_email>    Transfer a record to another doctor
  watch [seconds]                        Print referral status changes for a while (default: 30)
  clear-cache                            Remove every cached ciphertext
  purge-cache                            Remove cached ciphertexts older than the cache TTL
  clear                                  Clear screen and redisplay welcome message
  help                                   Show this help
  exit                                   Exit REPL

The private key is read from the MEDLINK_PRIVATE_KEY environment variable and never stored.
Examples:
  identity "Dr. Alice" alice@hospital.org
  records received
  records sent 2
  open 42
  open 42 downloads/patient-42
  transfer 42 bob@clinic.org"""
