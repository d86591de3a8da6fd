import sys
import hmac
import hashlib
import logging
import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, NamedTuple, Optional

from tabulate import tabulate

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(levelname)s] [%(name)s] %(message)s"

# ==============================================================================
# 0. Configuration
# ==============================================================================

@dataclass(frozen=True)
class GameConfig:
    """
    Rule limits and console behaviour for one game session.
    Fields:
        min_dice (int): Fewest dice accepted on the command line.
        max_faces (int): Most faces a single die may have.
        key_size (int): Bytes of HMAC key drawn per commitment.
        self_play_probability (float): Value shown on the table diagonal.
        show_table_on_start (bool): Print the probability table before play.
        user_contests_computer_roll (bool): Ask the user for the addend of the
            computer's roll instead of drawing it from the secure source.
        log_level (int): Level passed to logging.basicConfig by main().
    """
    min_dice: int = 3
    max_faces: int = 6
    key_size: int = 32
    self_play_probability: float = 0.5
    show_table_on_start: bool = True
    user_contests_computer_roll: bool = False
    log_level: int = logging.WARNING

    def __post_init__(self):
        if self.min_dice < 2:
            raise ValueError(f"min_dice must be at least 2, got {self.min_dice}")
        if self.max_faces < 1:
            raise ValueError(f"max_faces must be at least 1, got {self.max_faces}")
        if self.key_size < 32:
            raise ValueError(f"key_size must be at least 32 bytes, got {self.key_size}")


DEFAULT_CONFIG = GameConfig()

# ==============================================================================
# 1. Error Handling Classes
# ==============================================================================

class ValidationError(Exception):
    """
    Custom exception for die specification errors found at startup.
    Provides a formatted message including an example of correct usage.
    """
    _invocation_command = "python"

    @staticmethod
    def set_invocation_command(command: str):
        """Sets the command used to run the script (e.g., 'python' or 'py')."""
        ValidationError._invocation_command = command

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        script_name = sys.argv[0] if sys.argv else 'fair_dice.py'
        example = (
            f"{ValidationError._invocation_command} {script_name} "
            f"2,2,4,4,9,9 1,1,6,6,8,8 3,3,5,5,7,7"
        )
        return f"\nArgument Error: {self.message}\n\nExample usage:\n{example}\n"

    @classmethod
    def not_enough_dice(cls, count: int, minimum: int) -> "ValidationError":
        return cls(f"At least {minimum} dice are required, got {count}.")

    @classmethod
    def empty_die(cls, spec: str) -> "ValidationError":
        return cls(f"Empty dice configuration: '{spec}'.")

    @classmethod
    def non_integer(cls, spec: str) -> "ValidationError":
        return cls(f"All dice faces must be integer values: '{spec}'.")

    @classmethod
    def face_too_long(cls, spec: str) -> "ValidationError":
        return cls(f"A face value in '{spec}' has too many digits.")

    @classmethod
    def too_many_faces(cls, spec: str, count: int, maximum: int) -> "ValidationError":
        return cls(f"A die may have at most {maximum} faces, '{spec}' has {count}.")


class EntropyError(RuntimeError):
    """Raised when the operating system cannot supply secure random bytes."""


class ExitRequested(Exception):
    """Raised when the user types X at a prompt."""

# ==============================================================================
# 2. Data Structure for a Die
# ==============================================================================

@dataclass(frozen=True)
class Die:
    faces: tuple[int, ...]

    def __post_init__(self):
        if not self.faces:
            raise ValueError("A die must have at least one face.")
        object.__setattr__(self, "faces", tuple(self.faces))

    def face(self, index: int) -> int:
        return self.faces[index % len(self.faces)]

    def __str__(self) -> str:
        return ",".join(map(str, self.faces))

    def __len__(self) -> int:
        return len(self.faces)

# ==============================================================================
# 3. Command-Line Argument Parser
# ==============================================================================

class DiceParser:
    @staticmethod
    def parse(args: list[str], config: GameConfig = DEFAULT_CONFIG) -> list[Die]:
        if len(args) < config.min_dice:
            raise ValidationError.not_enough_dice(len(args), config.min_dice)
        return [DiceParser.parse_die(arg, config) for arg in args]

    @staticmethod
    def parse_die(spec: str, config: GameConfig = DEFAULT_CONFIG) -> Die:
        tokens = [token.strip() for token in spec.split(',')]
        if tokens == ['']:
            raise ValidationError.empty_die(spec)
        faces = [DiceParser._parse_face(token, spec) for token in tokens]
        if len(faces) > config.max_faces:
            raise ValidationError.too_many_faces(spec, len(faces), config.max_faces)
        return Die(tuple(faces))

    @staticmethod
    def _parse_face(token: str, spec: str) -> int:
        try:
            return int(token)
        except ValueError:
            digits = token[1:] if token[:1] in ("+", "-") else token
            if digits.isdecimal():
                raise ValidationError.face_too_long(spec) from None
            raise ValidationError.non_integer(spec) from None

# ==============================================================================
# 4. Cryptographic Operations
# ==============================================================================

class SecureRandomSource:
    """
    Cryptographically strong randomness backed by the ``secrets`` module.

    ``generate_uniform`` is exactly uniform because it uses rejection sampling:
    a draw of k bytes above ``max_value`` is thrown away and redrawn. Reducing
    the draw modulo the range size would favour low values whenever the range
    size does not divide 2**(8k).
    """

    def __init__(self, key_size: int = DEFAULT_CONFIG.key_size):
        self.key_size = key_size

    def random_bytes(self, count: int) -> bytes:
        try:
            return secrets.token_bytes(count)
        except (OSError, NotImplementedError) as e:
            raise EntropyError(f"Secure random source unavailable: {e}") from e

    def generate_key(self) -> bytes:
        return self.random_bytes(self.key_size)

    def generate_uniform(self, max_value: int) -> int:
        if max_value < 0:
            raise ValueError(f"max_value must be non-negative, got {max_value}")
        if max_value == 0:
            return 0
        width = max(1, (max_value.bit_length() + 7) // 8)
        while True:
            value = int.from_bytes(self.random_bytes(width), "big")
            if value <= max_value:
                return value


class CommitmentHasher:
    digestmod = hashlib.sha3_256

    @staticmethod
    def commit(key: bytes, message: int) -> str:
        message_bytes = str(message).encode('utf-8')
        h = hmac.new(key, message_bytes, CommitmentHasher.digestmod)
        return h.hexdigest().upper()

    @staticmethod
    def verify(key: bytes, message: int, digest: str) -> bool:
        return hmac.compare_digest(CommitmentHasher.commit(key, message), digest.upper())

# ==============================================================================
# 5. Commit-Reveal Protocol
# ==============================================================================

class ProtocolState(Enum):
    UNCOMMITTED = "uncommitted"
    COMMITTED = "committed"
    OPENED = "opened"


class Commitment(NamedTuple):
    secret_value: int
    secret_key: bytes
    digest: str
    range_max: int


@dataclass(frozen=True)
class Reveal:
    """Everything disclosed when a commitment is opened."""
    secret_value: int
    secret_key: bytes = field(repr=False)
    digest: str
    user_value: int
    result: int
    modulus: int

    @property
    def key_hex(self) -> str:
        return self.secret_key.hex().upper()

    def verify(self) -> bool:
        return CommitmentHasher.verify(self.secret_key, self.secret_value, self.digest)


class FairValueProtocol:
    """
    One commit-reveal decision: UNCOMMITTED -> COMMITTED -> OPENED.

    The computer binds itself to a secret value in [0, range_max] by showing the
    HMAC digest first. The counterparty then answers with its own value, and
    the outcome is (secret + answer) mod (range_max + 1), uniform whatever the
    counterparty picked. Opening hands out the key so the digest can be checked.
    """

    def __init__(self, rng: SecureRandomSource, hasher: type = CommitmentHasher):
        self.rng = rng
        self.hasher = hasher
        self.state = ProtocolState.UNCOMMITTED
        self.digest: Optional[str] = None
        self.range_max: Optional[int] = None
        self._commitment: Optional[Commitment] = None

    def begin(self, max_value: int) -> Commitment:
        if self.state is not ProtocolState.UNCOMMITTED:
            raise RuntimeError(f"Cannot commit a fair value in state {self.state.value}.")
        secret_value = self.rng.generate_uniform(max_value)
        secret_key = self.rng.generate_key()
        digest = self.hasher.commit(secret_key, secret_value)
        self._commitment = Commitment(secret_value, secret_key, digest, max_value)
        self.digest = digest
        self.range_max = max_value
        self.state = ProtocolState.COMMITTED
        logger.debug("Committed to a value in 0..%d (HMAC=%s)", max_value, digest)
        return self._commitment

    def open(self, user_value: int) -> Reveal:
        if self.state is not ProtocolState.COMMITTED:
            raise RuntimeError(f"Cannot open a fair value in state {self.state.value}.")
        if not 0 <= user_value <= self.range_max:
            raise ValueError(f"user_value must be in 0..{self.range_max}, got {user_value}")
        commitment = self._commitment
        modulus = commitment.range_max + 1
        reveal = Reveal(
            secret_value=commitment.secret_value,
            secret_key=commitment.secret_key,
            digest=commitment.digest,
            user_value=user_value,
            result=(commitment.secret_value + user_value) % modulus,
            modulus=modulus,
        )
        # the key leaves with the reveal
        self._commitment = None
        self.state = ProtocolState.OPENED
        logger.debug("Opened HMAC=%s: (%d + %d) mod %d = %d",
                     reveal.digest, reveal.secret_value, user_value, modulus, reveal.result)
        return reveal

# ==============================================================================
# 6. Probability Calculation Logic
# ==============================================================================

class ProbabilityCalculator:
    @staticmethod
    def calculate_win_probability(die1: Die, die2: Die) -> float:
        wins = sum(1 for f1 in die1.faces for f2 in die2.faces if f1 > f2)
        return wins / (len(die1) * len(die2))

    @staticmethod
    def calculate_tie_probability(die1: Die, die2: Die) -> float:
        ties = sum(1 for f1 in die1.faces for f2 in die2.faces if f1 == f2)
        return ties / (len(die1) * len(die2))

    @staticmethod
    def matrix(all_dice: list[Die], self_play: float = DEFAULT_CONFIG.self_play_probability) -> list[list[float]]:
        """Row i, column j: chance die i beats die j. The diagonal is the self-play convention."""
        return [
            [
                self_play if i == j else ProbabilityCalculator.calculate_win_probability(row_die, col_die)
                for j, col_die in enumerate(all_dice)
            ]
            for i, row_die in enumerate(all_dice)
        ]

# ==============================================================================
# 7. Help Table Generation
# ==============================================================================

class HelpTableGenerator:
    @staticmethod
    def generate_table(all_dice: list[Die], calculator: type = ProbabilityCalculator,
                       self_play: float = DEFAULT_CONFIG.self_play_probability) -> str:
        headers = ["User dice v"] + [str(d) for d in all_dice]
        table_data = []
        for i, row in enumerate(calculator.matrix(all_dice, self_play)):
            cells = [f"-({prob:.2f})" if i == j else f"{prob:.2f}" for j, prob in enumerate(row)]
            table_data.append([str(all_dice[i])] + cells)

        intro = (
            "Probability of the win for the user:\n"
            "Rows are the user's dice, columns the computer's. "
            "-(x) marks a die played against itself.\n"
        )
        return intro + tabulate(table_data, headers=headers, tablefmt="grid", disable_numparse=True)

# ==============================================================================
# 8. Console User Interface
# ==============================================================================

class PromptState(Enum):
    AWAITING = "awaiting"
    RESOLVED = "resolved"
    HELP = "help"
    EXIT = "exit"


class PromptOutcome(NamedTuple):
    state: PromptState
    value: Optional[int] = None
    error: Optional[str] = None


def interpret_selection(raw: str, max_value: int, allow_help: bool = True) -> PromptOutcome:
    """Map one line of user input to the next prompt state."""
    choice = raw.strip().upper()
    if choice == 'X':
        return PromptOutcome(PromptState.EXIT)
    if choice == '?' and allow_help:
        return PromptOutcome(PromptState.HELP)
    if choice.isdecimal():
        # digit strings past int()'s conversion limit must not reach int()
        digits = choice.lstrip("0") or "0"
        if len(digits) <= len(str(max_value)) and int(digits) <= max_value:
            return PromptOutcome(PromptState.RESOLVED, value=int(digits))
    error = (f"Invalid input. Please enter a number between 0 and {max_value}, X to exit"
             + (", or ? for help." if allow_help else "."))
    return PromptOutcome(PromptState.AWAITING, error=error)


class GameUI:
    def __init__(self, input_fn: Optional[Callable[[str], str]] = None,
                 output_fn: Optional[Callable[[str], None]] = None):
        self.input_fn = input_fn or input
        self.output_fn = output_fn or print

    def display_message(self, text: str):
        self.output_fn(text)

    def display_hmac(self, range_max: int, digest: str):
        self.output_fn(f"I selected a random value in the range 0..{range_max} (HMAC={digest}).")

    def display_reveal(self, reveal: Reveal, name: str = "My selection"):
        self.output_fn(f"{name}: {reveal.secret_value} (KEY={reveal.key_hex}).")

    def show_menu(self, options: list[str], allow_help: bool):
        for i, option in enumerate(options):
            self.output_fn(f"{i} - {option}")
        self.output_fn("X - exit")
        if allow_help:
            self.output_fn("? - help")

    def get_selection(self, options: list[str], allow_help: bool = True,
                      on_help: Optional[Callable[[], None]] = None) -> int:
        allow_help = allow_help and on_help is not None
        self.show_menu(options, allow_help)
        while True:
            outcome = interpret_selection(self.input_fn("Your selection: "), len(options) - 1, allow_help)
            if outcome.state is PromptState.EXIT:
                raise ExitRequested()
            if outcome.state is PromptState.HELP:
                on_help()
                self.show_menu(options, allow_help)
                continue
            if outcome.state is PromptState.RESOLVED:
                return outcome.value
            self.output_fn(outcome.error)

# ==============================================================================
# 9. Provably Fair Decision Points
# ==============================================================================

class Party(Enum):
    USER = "user"
    COMPUTER = "computer"


class FairInteraction:
    def __init__(self, rng: SecureRandomSource, ui: GameUI, hasher: type = CommitmentHasher):
        self.rng = rng
        self.ui = ui
        self.hasher = hasher

    def new_protocol(self) -> FairValueProtocol:
        return FairValueProtocol(self.rng, self.hasher)

    def determine_first_player(self) -> Party:
        self.ui.display_message("Let's determine who makes the first move.")
        protocol = self.new_protocol()
        protocol.begin(1)
        self.ui.display_hmac(protocol.range_max, protocol.digest)
        self.ui.display_message("Try to guess my selection.")

        user_guess = self.ui.get_selection(["0", "1"], allow_help=False)
        reveal = protocol.open(user_guess)
        self.ui.display_reveal(reveal)

        first = Party.USER if reveal.result == 0 else Party.COMPUTER
        self.ui.display_message("You make the first move." if first is Party.USER else "I make the first move.")
        logger.debug("First move: %s", first.value)
        return first

    def get_fair_roll_index(self, face_count: int, user_answers: bool = True) -> int:
        max_index = face_count - 1
        protocol = self.new_protocol()
        protocol.begin(max_index)
        self.ui.display_hmac(max_index, protocol.digest)

        if user_answers:
            self.ui.display_message(f"Add your number modulo {face_count}.")
            options = [str(i) for i in range(face_count)]
            addend = self.ui.get_selection(options, allow_help=True, on_help=self._show_roll_help)
        else:
            addend = self.rng.generate_uniform(max_index)
            self.ui.display_message(f"I add my own number {addend} modulo {face_count}.")

        reveal = protocol.open(addend)
        self.ui.display_reveal(reveal, name="My number")
        self.ui.display_message(
            f"The fair number generation result is {reveal.secret_value} + {addend} = "
            f"{reveal.result} (mod {face_count})."
        )
        return reveal.result

    def _show_roll_help(self):
        self.ui.display_message(
            "\nSelect a number to add to my hidden number.\n"
            "The result is (my_number + your_number) modulo number_of_faces.\n"
            "I revealed the HMAC of my number before you chose, so I cannot change it;\n"
            "check it with the KEY shown afterwards.\n"
        )

# ==============================================================================
# 10. Main Game Controller
# ==============================================================================

@dataclass
class GameState:
    available: list[int]
    first_mover: Optional[Party] = None
    user_die: Optional[int] = None
    computer_die: Optional[int] = None
    user_roll: Optional[int] = None
    computer_roll: Optional[int] = None

    def take(self, index: int):
        self.available.remove(index)

    def winner(self) -> Optional[Party]:
        """None means a tie."""
        if self.user_roll > self.computer_roll:
            return Party.USER
        if self.computer_roll > self.user_roll:
            return Party.COMPUTER
        return None


class GameController:
    def __init__(self, dice: list[Die], ui: GameUI, interaction: FairInteraction,
                 help_gen: type = HelpTableGenerator, config: GameConfig = DEFAULT_CONFIG):
        self.all_dice = dice
        self.ui = ui
        self.interaction = interaction
        self.help_gen = help_gen
        self.config = config

    def run(self) -> GameState:
        if self.config.show_table_on_start:
            self._show_table()
        state = GameState(available=list(range(len(self.all_dice))))

        state.first_mover = self.interaction.determine_first_player()
        self._select_dice(state)

        self.ui.display_message("\nIt's time for my roll.")
        state.computer_roll = self._roll(state.computer_die, self.config.user_contests_computer_roll)
        self.ui.display_message(f"My roll result is {state.computer_roll}.")

        self.ui.display_message("\nIt's time for your roll.")
        state.user_roll = self._roll(state.user_die, True)
        self.ui.display_message(f"Your roll result is {state.user_roll}.")

        self._report(state)
        return state

    def _select_dice(self, state: GameState):
        if state.first_mover is Party.USER:
            state.user_die = self._get_player_die_choice(state)
            state.computer_die = self._get_computer_die_choice(state)
        else:
            state.computer_die = self._get_computer_die_choice(state)
            state.user_die = self._get_player_die_choice(state)

    def _get_computer_die_choice(self, state: GameState) -> int:
        index = state.available[self.interaction.rng.generate_uniform(len(state.available) - 1)]
        state.take(index)
        self.ui.display_message(f"I choose the [{self.all_dice[index]}] dice.")
        logger.debug("Computer picked die %d", index)
        return index

    def _get_player_die_choice(self, state: GameState) -> int:
        options = [str(self.all_dice[i]) for i in state.available]
        self.ui.display_message("Choose your dice:")
        choice = self.ui.get_selection(options, allow_help=True, on_help=self._show_table)
        index = state.available[choice]
        state.take(index)
        self.ui.display_message(f"You choose the [{self.all_dice[index]}] dice.")
        logger.debug("User picked die %d", index)
        return index

    def _roll(self, die_index: int, user_answers: bool) -> int:
        die = self.all_dice[die_index]
        result_index = self.interaction.get_fair_roll_index(len(die), user_answers)
        return die.face(result_index)

    def _show_table(self):
        self.ui.display_message(
            self.help_gen.generate_table(self.all_dice, ProbabilityCalculator, self.config.self_play_probability)
        )

    def _report(self, state: GameState):
        user, computer = state.user_roll, state.computer_roll
        winner = state.winner()
        if winner is Party.USER:
            self.ui.display_message(f"You win ({user} > {computer})!")
        elif winner is Party.COMPUTER:
            self.ui.display_message(f"I win ({computer} > {user})!")
        else:
            self.ui.display_message(f"It's a tie ({user} = {computer})!")
        logger.debug("Game over: user=%d computer=%d winner=%s",
                     user, computer, winner.value if winner else "tie")

# ==============================================================================
# 11. Main Execution Block
# ==============================================================================

def main(argv: Optional[list[str]] = None, config: GameConfig = DEFAULT_CONFIG):
    logging.basicConfig(level=config.log_level, format=LOG_FORMAT, stream=sys.stderr)
    try:
        if 'py.exe' in sys.executable.lower():
            ValidationError.set_invocation_command('py')
        else:
            ValidationError.set_invocation_command('python')

        args = sys.argv[1:] if argv is None else argv
        dice = DiceParser.parse(args, config)

        ui = GameUI()
        rng = SecureRandomSource(config.key_size)
        interaction = FairInteraction(rng, ui)

        controller = GameController(dice, ui, interaction, HelpTableGenerator, config)
        controller.run()

    except ValidationError as e:
        print(e, file=sys.stderr)
        sys.exit(1)
    except ExitRequested:
        sys.exit(0)
    except EntropyError as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(2)
    except (KeyboardInterrupt, EOFError):
        print("\nGame interrupted. Goodbye!")
        sys.exit(0)

if __name__ == "__main__":
    main()
