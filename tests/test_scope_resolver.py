"""
Unit tests for scope tree construction and binding resolution
"""

import pytest

from i18n_nsfix.config import ScanHints
from i18n_nsfix.errors import FileReadError, UnresolvableAmbiguity
from i18n_nsfix.scope_resolver import ScopeResolver


TWO_COMPONENTS = '''import { useTranslations } from "next-intl";

export function Header() {
  const t = useTranslations("header");
  return <h1>{t("title")}</h1>;
}

export function Footer() {
  const t = useTranslations("footer");
  return <p>{t("copyright")}</p>;
}
'''


def calls_by_key(scan):
    return {rc.call.key: rc for rc in scan.calls}


class TestScopeResolution:
    def test_same_name_in_two_functions_resolves_locally(self):
        scan = ScopeResolver().scan_text(TWO_COMPONENTS)
        calls = calls_by_key(scan)
        assert calls["title"].binding.namespace == "header"
        assert calls["copyright"].binding.namespace == "footer"
        assert calls["title"].call.function.name == "Header"
        assert calls["copyright"].call.function.name == "Footer"

    def test_sibling_function_binding_is_not_visible(self):
        text = '''function A() {
  const t = useTranslations("a");
  return t("x");
}
function B() {
  return t("y");
}
'''
        scan = ScopeResolver().scan_text(text)
        calls = calls_by_key(scan)
        assert calls["x"].binding.namespace == "a"
        assert calls["y"].binding is None
        with pytest.raises(UnresolvableAmbiguity):
            scan.resolve_call(calls["y"].call)

    def test_nested_shadowing(self):
        text = '''export default function Page() {
  const t = useTranslations("outer");
  const Row = () => {
    const t = useTranslations("inner");
    return <td>{t("cell")}</td>;
  };
  const Deep = () => {
    return items.map((i) => {
      return t("deep");
    });
  };
  return <div>{t("page")}<Row /></div>;
}
'''
        scan = ScopeResolver().scan_text(text)
        calls = calls_by_key(scan)
        assert calls["cell"].binding.namespace == "inner"
        assert calls["deep"].binding.namespace == "outer"
        assert calls["page"].binding.namespace == "outer"
        assert calls["cell"].call.function.name == "Row"

    def test_top_level_binding_visible_everywhere(self):
        text = '''const t = useTranslations("common");
function A() {
  return t("ok");
}
'''
        scan = ScopeResolver().scan_text(text)
        rc = scan.calls[0]
        assert rc.binding.namespace == "common"
        assert rc.binding.scope.kind == "root"

    def test_call_before_binding_is_unresolved(self):
        text = '''function A() {
  const early = t("early");
  const t = useTranslations("a");
  return t("late");
}
'''
        scan = ScopeResolver().scan_text(text)
        calls = calls_by_key(scan)
        assert calls["early"].binding is None
        assert calls["late"].binding.namespace == "a"


class TestDiscovery:
    def test_awaited_server_binding(self):
        text = '''export default async function Page() {
  const tExtAdmin = await getTranslations("ext_admin");
  return tExtAdmin("users");
}
'''
        scan = ScopeResolver().scan_text(text)
        b = scan.bindings[0]
        assert b.name == "tExtAdmin"
        assert b.namespace == "ext_admin"
        assert b.awaited is True
        assert b.binding_fn == "getTranslations"
        assert b.scope.is_async is True
        assert b.line == 2

    def test_binding_span_without_semicolon_stops_at_paren(self):
        text = 'function A() {\n  const t = useTranslations("blog")\n  return t("x")\n}\n'
        b = ScopeResolver().scan_text(text).bindings[0]
        assert text[b.start:b.end] == 'const t = useTranslations("blog")'

        text = 'function A() {\n  const t = useTranslations("blog") ;\n}\n'
        b = ScopeResolver().scan_text(text).bindings[0]
        assert text[b.start:b.end] == 'const t = useTranslations("blog") ;'

    def test_calls_in_strings_and_comments_are_ignored(self):
        text = '''function A() {
  const t = useTranslations("a");
  // t("commented")
  const s = "t('quoted')";
  return t("real");
}
'''
        scan = ScopeResolver().scan_text(text)
        assert [rc.call.key for rc in scan.calls] == ["real"]

    def test_call_patterns(self):
        text = '''function A() {
  const t = useTranslations("a");
  obj.t("member");
  format("nope");
  t.rich("rich", { b: (c) => c });
  return tCommon('single');
}
'''
        scan = ScopeResolver().scan_text(text)
        keys = [rc.call.key for rc in scan.calls]
        assert keys == ["rich", "single"]
        single = scan.calls[1].call
        assert single.quote == "'"
        assert text[single.key_start:single.key_end] == "'single'"
        assert text[single.start:single.name_end] == "tCommon"

    def test_custom_binding_function(self):
        text = '''function A() {
  const t = useScopedI18n("shop");
  return t("buy");
}
'''
        hints = ScanHints(binding_functions=["useScopedI18n"])
        scan = ScopeResolver(hints).scan_text(text)
        assert scan.calls[0].binding.namespace == "shop"

    def test_function_names(self):
        text = '''export default function Page() {}
const Arrow = () => {};
const Typed = (a: string): void => {};
const Memo = memo(function Inner() {});
const Card = React.forwardRef((props, ref) => {});
export default () => {};
const cols = [{ cell: ({ row }) => { return row; } }];
class Store {
  async load(id) { return id; }
}
'''
        scan = ScopeResolver().scan_text(text)
        names = [s.name for s in scan.root.children if s.kind == "function"]
        assert names == ["Page", "Arrow", "Typed", "Inner", "Card", "default"]
        cell = scan.scope_at(text.index("return row"))
        assert cell.kind == "function" and cell.name is None
        load = scan.scope_at(text.index("return id"))
        assert load.name == "load" and load.is_async is True

    def test_empty_file(self):
        scan = ScopeResolver().scan_text("export const x = 1;\n")
        assert scan.is_empty
        assert scan.ok

    def test_unreadable_file_is_reported(self, tmp_path):
        scan = ScopeResolver().scan_file(str(tmp_path / "missing.tsx"))
        assert not scan.ok
        assert isinstance(scan.error, FileReadError)
        assert scan.calls == []
