"""Change message parsing and label manipulation."""

import re
from typing import List, Optional

_LABEL_PATTERN = re.compile(r'^(?P<name>[\w-]+)(?P<separator> *[:=] ?)(?P<value>.*)$')


class LabelLine:
    """A line of a message that may hold a label."""

    def __init__(self, line: str):
        self.line = line
        self.name: Optional[str] = None
        self.separator: Optional[str] = None
        self.value: Optional[str] = None
        match = _LABEL_PATTERN.match(line)
        # 'http://foo' is not a label
        if match and not match.group('value').startswith('//'):
            self.name = match.group('name')
            self.separator = match.group('separator')
            self.value = match.group('value')

    @classmethod
    def create(cls, name: str, separator: str, value: str) -> 'LabelLine':
        return cls(f'{name}{separator}{value}')

    def is_label(self, name: Optional[str] = None) -> bool:
        if self.name is None:
            return False
        return name is None or self.name == name

    def __repr__(self) -> str:
        return f'LabelLine({self.line!r})'


class ChangeMessage:
    """A change message split into free text and a trailing labels paragraph."""

    def __init__(self, text: str, labels: List[LabelLine]):
        self.text = text
        self.labels = labels

    @classmethod
    def parse_message(cls, message: str) -> 'ChangeMessage':
        """Parse a message, reading labels only from its last paragraph."""
        message = message.rstrip('\n')
        paragraphs = message.split('\n\n')
        if len(paragraphs) > 1:
            last = [LabelLine(line) for line in paragraphs[-1].split('\n')]
            if all(line.is_label() for line in last if line.line.strip()):
                return cls('\n\n'.join(paragraphs[:-1]), last)
        return cls(message, [])

    @classmethod
    def parse_all_as_labels(cls, message: str) -> 'ChangeMessage':
        """Parse a message treating every line as a possible label."""
        return cls('', [LabelLine(line) for line in message.rstrip('\n').split('\n')])

    def label_values(self, name: str) -> List[str]:
        return [label.value for label in self.labels if label.is_label(name)]

    def label_map(self):
        result = {}
        for label in self.labels:
            if label.is_label():
                result.setdefault(label.name, []).append(label.value)
        return result

    def with_text(self, text: str) -> 'ChangeMessage':
        return ChangeMessage(text, list(self.labels))

    def with_label(self, name: str, separator: str, value: str) -> 'ChangeMessage':
        return ChangeMessage(self.text, self.labels + [LabelLine.create(name, separator, value)])

    def with_new_or_replaced_label(
        self, name: str, separator: str, value: str
    ) -> 'ChangeMessage':
        if any(label.is_label(name) for label in self.labels):
            return self.with_replaced_label(name, separator, value)
        return self.with_label(name, separator, value)

    def with_replaced_label(self, name: str, separator: str, value: str) -> 'ChangeMessage':
        labels = [
            LabelLine.create(name, separator, value) if label.is_label(name) else label
            for label in self.labels
        ]
        return ChangeMessage(self.text, labels)

    def with_removed_label_by_name(self, name: str) -> 'ChangeMessage':
        return ChangeMessage(
            self.text, [label for label in self.labels if not label.is_label(name)]
        )

    def __str__(self) -> str:
        label_block = '\n'.join(label.line for label in self.labels)
        text = self.text.rstrip('\n')
        if not text:
            return label_block + '\n' if label_block else ''
        if not label_block:
            return text + '\n'
        return f'{text}\n\n{label_block}\n'
