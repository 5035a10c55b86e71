"""
Unit tests for duplicate consolidation and per-file fix planning
"""

from conftest import write_locales
from i18n_nsfix.fix_planner import (
    DEDUPLICATE, MOVE_TO_COMMON, MOVE_TO_PARENT, DuplicateGroup, context_dependent_policy,
    duplicate_retargets, find_duplicate_groups, namespace_domain, plan_file_fixes,
)
from i18n_nsfix.locale_store import LocaleStore, ValueLocation
from i18n_nsfix.rewriter import KeyMove, apply_edits
from i18n_nsfix.scope_resolver import ScopeResolver
from i18n_nsfix.utils import common_ancestor


def make_store(tmp_path, en, **others):
    write_locales(tmp_path, dict(en=en, **others))
    store = LocaleStore(str(tmp_path), "en")
    store.load()
    return store


def fix(text, retargets_by_key):
    """Plan with retargets given as {key: (ns, key)} and return (new_text, plan)."""
    scan = ScopeResolver().scan_text(text, "app/x.tsx")
    retargets = {rc.call.start: retargets_by_key[rc.call.key] for rc in scan.calls if rc.call.key in retargets_by_key}
    plan = plan_file_fixes(scan, retargets)
    new_text, mismatches = apply_edits(text, plan.edits)
    assert mismatches == []
    return new_text, plan


class TestCommonAncestor:
    def test_shared_prefix(self):
        assert common_ancestor(["ext_admin_users", "ext_admin_roles"]) == "ext_admin"
        assert common_ancestor(["ext_admin", "ext_admin_users"]) == "ext_admin"
        assert common_ancestor(["ext_a", "ext_b"]) == "ext"

    def test_unrelated_roots_fall_back(self):
        assert common_ancestor(["blog", "ext_admin"]) == "common"
        assert common_ancestor(["blog", "shop"], fallback="shared") == "shared"


class TestDuplicateGroups:
    def test_spec_example(self, basic_store):
        groups = find_duplicate_groups(basic_store)
        assert len(groups) == 1
        g = groups[0]
        assert (g.target_namespace, g.target_key) == ("common", "save")
        assert g.suggested_action == MOVE_TO_COMMON
        assert g.savings == 1
        assert g.moves() == [KeyMove("ext_admin", "save_btn", "common", "save")]
        assert g.id.startswith("dup_")

    def test_parent_and_dedupe_actions(self, tmp_path):
        store = make_store(tmp_path, {
            "ext_admin_users": {"status": "Status"},
            "ext_admin_roles": {"status": "Status"},
            "ext_shop": {"buy": "Buy now"},
            "ext_shop_cart": {"buy_now": "Buy Now"},
        })
        groups = {g.normalized_value: g for g in find_duplicate_groups(store)}
        assert groups["status"].target_namespace == "ext_admin"
        assert groups["status"].suggested_action == MOVE_TO_PARENT
        assert groups["buy now"].target_namespace == "ext_shop"
        assert groups["buy now"].target_key == "buy"
        assert groups["buy now"].suggested_action == DEDUPLICATE

    def test_most_frequent_key_wins(self, tmp_path):
        store = make_store(tmp_path, {
            "a_x": {"close_btn": "Close"},
            "a_y": {"close_btn": "Close"},
            "a_z": {"close": "Close"},
        })
        g = find_duplicate_groups(store)[0]
        assert g.target_key == "close_btn"
        assert g.savings == 2

    def test_conflicting_target_key_gets_suffix(self, tmp_path):
        store = make_store(tmp_path, {
            "common": {"label": "Something else"},
            "blog": {"label": "Label"},
            "shop": {"label": "Label"},
        })
        g = find_duplicate_groups(store)[0]
        assert (g.target_namespace, g.target_key) == ("common", "label_1")

    def test_same_namespace_only_is_not_a_group(self, tmp_path):
        store = make_store(tmp_path, {"blog": {"a": "Same", "b": "Same"}})
        assert find_duplicate_groups(store) == []

    def test_context_dependent_policy(self, tmp_path):
        store = make_store(tmp_path, {
            "admin_blog": {"name": "Name"},
            "ext_forex": {"name": "Name"},
            "blog_tag": {"title": "Title"},
            "admin_blog_post": {"title": "Title"},
        })
        policy = context_dependent_policy(["name", "title"])
        groups = find_duplicate_groups(store, policy=policy)
        assert [g.normalized_value for g in groups] == ["title"]
        assert len(find_duplicate_groups(store)) == 2

    def test_namespace_domain(self):
        assert namespace_domain("admin_blog_tag") == "blog_tag"
        assert namespace_domain("ext_admin") == "ext_admin"

    def test_round_trip_dict(self, basic_store):
        g = find_duplicate_groups(basic_store)[0]
        assert DuplicateGroup.from_dict(g.to_dict()) == g
        assert g.locations[0] == ValueLocation("common", "save", "Save")


class TestFilePlanner:
    def test_retarget_adds_binding_and_removes_unused(self):
        text = '''export default function Blog() {
  const t = useTranslations("blog");
  return <h1>{t("title")}</h1>;
}
'''
        new_text, plan = fix(text, {"title": ("common", "title")})
        assert new_text == '''export default function Blog() {
  const tCommon = useTranslations("common");
  return <h1>{tCommon("title")}</h1>;
}
'''
        assert plan.calls_fixed == 1
        assert plan.bindings_added == ["tCommon (common)"]
        assert plan.bindings_removed == ["t (blog)"]

    def test_binding_still_in_use_is_kept(self):
        text = '''function Blog() {
  const t = useTranslations("blog");
  return <div>{t("heading")}{t("title")}</div>;
}
'''
        new_text, plan = fix(text, {"title": ("common", "title")})
        assert new_text == '''function Blog() {
  const t = useTranslations("blog");
  const tCommon = useTranslations("common");
  return <div>{t("heading")}{tCommon("title")}</div>;
}
'''
        assert plan.bindings_removed == []

    def test_two_new_namespaces_after_kept_binding(self):
        text = '''function Shop() {
  const t = useTranslations("blog");
  return [t("heading"), t("title"), t("price")];
}
'''
        new_text, plan = fix(text, {"title": ("common", "title"), "price": ("shop", "price")})
        assert new_text == '''function Shop() {
  const t = useTranslations("blog");
  const tCommon = useTranslations("common");
  const tShop = useTranslations("shop");
  return [t("heading"), tCommon("title"), tShop("price")];
}
'''
        assert plan.calls_fixed == 2
        assert plan.bindings_added == ["tCommon (common)", "tShop (shop)"]

    def test_two_new_namespaces_at_body_start(self):
        text = '''function Shop() {
  const t = useTranslations("blog");
  return [t("title"), t("price")];
}
'''
        new_text, plan = fix(text, {"title": ("common", "title"), "price": ("shop", "price")})
        assert new_text == '''function Shop() {
  const tCommon = useTranslations("common");
  const tShop = useTranslations("shop");
  return [tCommon("title"), tShop("price")];
}
'''
        assert plan.bindings_removed == ["t (blog)"]

    def test_semicolon_free_style_is_kept(self):
        text = '''function Blog() {
  const t = useTranslations("blog")
  return <div>{t("heading")}{t("title")}</div>
}
'''
        new_text, _ = fix(text, {"title": ("common", "title")})
        assert new_text == '''function Blog() {
  const t = useTranslations("blog")
  const tCommon = useTranslations("common")
  return <div>{t("heading")}{tCommon("title")}</div>
}
'''

    def test_semicolon_free_binding_removed_with_its_line(self):
        text = '''function Blog() {
  const t = useTranslations("blog")
  return <h1>{t("title")}</h1>
}
'''
        new_text, _ = fix(text, {"title": ("common", "title")})
        assert new_text == '''function Blog() {
  const tCommon = useTranslations("common")
  return <h1>{tCommon("title")}</h1>
}
'''

    def test_binding_referenced_elsewhere_is_kept(self):
        text = '''function Blog() {
  const t = useTranslations("blog");
  const label = t(dynamicKey);
  return t("title");
}
'''
        new_text, plan = fix(text, {"title": ("common", "title")})
        assert 'const t = useTranslations("blog");' in new_text
        assert "return tCommon(\"title\");" in new_text

    def test_existing_binding_is_reused(self):
        text = '''function A() {
  const t = useTranslations("blog");
  const tCommon = useTranslations("common");
  return t("title");
}
'''
        new_text, plan = fix(text, {"title": ("common", "title")})
        assert new_text == '''function A() {
  const tCommon = useTranslations("common");
  return tCommon("title");
}
'''
        assert plan.bindings_added == []

    def test_undeclared_call_in_async_function(self):
        text = '''export default async function Page() {
  return <p>{tCommon("cancel")}</p>;
}
'''
        new_text, plan = fix(text, {"cancel": ("common", "cancel")})
        assert new_text == '''export default async function Page() {
  const tCommon = await getTranslations("common");
  return <p>{tCommon("cancel")}</p>;
}
'''
        assert plan.calls_fixed == 1
        assert plan.warnings

    def test_style_copied_from_existing_binding(self):
        text = '''export default async function Page() {
  const t = await getTranslations("blog");
  return [t("heading"), t("title")];
}
'''
        new_text, _ = fix(text, {"title": ("common", "title")})
        assert 'const tCommon = await getTranslations("common");' in new_text

    def test_prefixed_key_is_stripped(self):
        text = '''function A() {
  const t = useTranslations("blog");
  return [t("heading"), t('common.save')];
}
'''
        new_text, plan = fix(text, {"common.save": ("common", "save")})
        assert "tCommon('save')" in new_text
        assert plan.calls_fixed == 1

    def test_key_only_change_keeps_accessor(self):
        text = '''function A() {
  const tExtAdmin = useTranslations("ext_admin");
  return [tExtAdmin("users"), tExtAdmin("save_btn")];
}
'''
        new_text, plan = fix(text, {"save_btn": ("ext_admin", "save")})
        assert 'tExtAdmin("save")' in new_text
        assert 'const tExtAdmin = useTranslations("ext_admin");' in new_text
        assert plan.bindings_added == []

    def test_top_level_call_is_skipped(self):
        text = '''const t = useTranslations("blog");
export const label = t("title");
'''
        new_text, plan = fix(text, {"title": ("common", "title")})
        assert new_text == text
        assert len(plan.skipped) == 1

    def test_shadowed_name_is_skipped(self):
        text = '''function Outer() {
  const t = useTranslations("blog");
  const Inner = () => {
    const tCommon = useTranslations("other");
    return t("title");
  };
}
'''
        new_text, plan = fix(text, {"title": ("common", "title")})
        assert new_text == text
        assert "shadowed" in plan.skipped[0]["reason"]

    def test_two_functions_are_planned_independently(self):
        text = '''function A() {
  const t = useTranslations("blog");
  return t("title");
}
function B() {
  const t = useTranslations("shop");
  return t("title");
}
'''
        new_text, plan = fix(text, {"title": ("common", "title")})
        assert new_text.count('const tCommon = useTranslations("common");') == 2
        assert new_text.count('tCommon("title")') == 2
        assert "useTranslations(\"blog\")" not in new_text
        assert plan.calls_fixed == 2

    def test_duplicate_retargets(self):
        text = '''function A() {
  const tExtAdmin = useTranslations("ext_admin");
  const t = useTranslations("blog");
  return [tExtAdmin("save_btn"), t("save_btn")];
}
'''
        scan = ScopeResolver().scan_text(text)
        retargets = duplicate_retargets(scan, [KeyMove("ext_admin", "save_btn", "common", "save")])
        assert list(retargets.values()) == [("common", "save")]
        assert text[next(iter(retargets)):].startswith('tExtAdmin("save_btn")')
