"""Unit tests for fenced code block extraction."""

import pytest

from modelrelay.agent.code_parser import extension_for, merge_code_files, parse_code_files
from modelrelay.agent.schemas import CodeFile

AGENT_OUTPUT = '''Here is the project.

```tsx file="app/page.tsx"
export default function Page() {
  return <main>Hello</main>
}
```

Some notes in between.

```typescript file='lib/utils.ts'
export const add = (a: number, b: number) => a + b
```

```css
body { margin: 0; }
```

```json
{"name": "demo"}
```
'''


class TestParseCodeFiles:

    def test_named_and_unnamed_blocks(self):
        files = parse_code_files(AGENT_OUTPUT)

        assert [f.path for f in files] == ["app/page.tsx", "lib/utils.ts", "file-1.css", "file-2.json"]
        assert [f.language for f in files] == ["tsx", "typescript", "css", "json"]

    def test_content_preserved(self):
        files = parse_code_files(AGENT_OUTPUT)
        assert files[0].content == "export default function Page() {\n  return <main>Hello</main>\n}"

    def test_no_blocks(self):
        assert parse_code_files("Just prose, no code.") == []
        assert parse_code_files("") == []

    def test_block_without_language(self):
        files = parse_code_files("```\nplain text\n```")
        assert files[0].path == "file-1.txt"
        assert files[0].language == "text"

    @pytest.mark.parametrize("language,extension", [
        ("typescript", "ts"),
        ("TSX", "tsx"),
        ("javascript", "js"),
        ("python", "py"),
        ("bash", "sh"),
        ("yaml", "yaml"),
        ("brainfuck", "txt"),
    ])
    def test_extensions(self, language, extension):
        assert extension_for(language) == extension


class TestMergeCodeFiles:

    def test_later_path_overrides(self):
        frontend = [CodeFile(path="a.ts", content="v1"), CodeFile(path="b.ts", content="b")]
        backend = [CodeFile(path="a.ts", content="v2"), CodeFile(path="c.ts", content="c")]

        merged = merge_code_files(frontend, backend)

        assert [f.path for f in merged] == ["a.ts", "b.ts", "c.ts"]
        assert merged[0].content == "v2"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
