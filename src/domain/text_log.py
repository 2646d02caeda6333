class TextLog:
    def __init__(self) -> None:
        self._lines: list[str] = []
        self._epoch = 0

    @property
    def lines(self) -> list[str]:
        return list(self._lines)

    @property
    def epoch(self) -> int:
        return self._epoch

    def append(self, line: str) -> None:
        self._lines.append(line)

    def clear(self) -> None:
        self._lines.clear()
        self._epoch += 1

    def render(self, pending: str = "") -> str:
        text = "".join(line + "\n" for line in self._lines)
        if pending:
            text += pending + "\n"
        return text

    def __len__(self) -> int:
        return len(self._lines)
