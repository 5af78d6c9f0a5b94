import sys
from pathlib import Path

from carrion.carrion_runtime import ScriptRunner
from carrion.carrion_printer import Printer


def read_line(prompt: str) -> str:
    """Reads one line from stdin; returns "" at end of input."""
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return sys.stdin.readline()


def print_effects(result):
    for effect in result.side_effects:
        if effect.get('topics') == ['stdout']:
            print(effect.get('message', ''))


def run_script_file(file_path: str):
    """Run a Carrion script file non-interactively and exit with appropriate status."""
    runner = ScriptRunner()
    printer = Printer()
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    result = runner.handle_script(source)
    print_effects(result)
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        raise SystemExit(1)
    if result.value is not None:
        print(printer.pformat(result.value))


def read_statement() -> str:
    """Reads one input unit. A line ending in ':' opens a block that a blank line closes."""
    raw = read_line(">> ")
    if raw == "":
        raise EOFError
    if not raw.rstrip().endswith(":"):
        return raw.strip()
    lines = [raw.rstrip()]
    while True:
        more = read_line(".. ")
        if more == "" or not more.strip():
            break
        lines.append(more.rstrip())
    return "\n".join(lines)


def main():
    """Run a script file when provided, otherwise start the interactive REPL."""
    if len(sys.argv) > 1:
        arg = sys.argv[1]
        if not arg.startswith("-"):
            run_script_file(arg)
            return

    print("Carrion REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")

    runner = ScriptRunner()
    printer = Printer()

    while True:
        try:
            source = read_statement()
            if not source:
                continue
            if source == "exit":
                break

            result = runner.handle_script(source)
            # print() output comes first, even when a later statement failed
            print_effects(result)
            if result.status == 'error':
                print(result.format_error(), file=sys.stderr)
                continue

            if result.value is not None:
                print(printer.pformat(result.value))

        except EOFError:
            print("\nExiting.")
            break


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nExiting.")
