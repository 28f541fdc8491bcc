"""Tests for code block fence language resolution."""

from converters.code_language import normalize_language, refine_language, resolve_code_language

VUE_COMPONENT = '<template>\n  <div>{{ msg }}</div>\n</template>\n<script>\nexport default {}\n</script>'


class TestCodeLanguage:
    def test_style_language_aliases(self):
        assert resolve_code_language({'style': {'language': 'js'}}, content='let a = 1') == 'javascript'
        assert resolve_code_language({'style': {'language': 'YML'}}, content='a: 1') == 'yaml'

    def test_numeric_ids(self):
        assert normalize_language(67) == 'yaml'
        assert normalize_language('28') == 'json'
        assert normalize_language(9999) == ''
        assert normalize_language(True) == ''

    def test_block_level_language_when_style_is_empty(self):
        assert resolve_code_language({'style': {}, 'language': 'yml'}, content='a: 1') == 'yaml'
        assert resolve_code_language({'style': {'language': 9999}, 'language': 'sh'}, content='ls') == 'bash'

    def test_record_language_is_last_resort(self):
        assert resolve_code_language({'elements': []}, {'language': 'JS'}, 'x = 1') == 'javascript'
        assert resolve_code_language({}, None, 'x = 1') == ''

    def test_typescript_with_jsx_becomes_tsx(self):
        content = 'export const App = () => <Layout title="x" />;'
        assert resolve_code_language({'style': {'language': 'ts'}}, content=content) == 'tsx'
        assert resolve_code_language({'style': {'language': 63}}, content='const n: number = 1;') == 'typescript'

    def test_jsx_fragment_and_return(self):
        assert refine_language('javascript', 'return (<div />)') == 'jsx'
        assert refine_language('javascript', 'const x = <>hi</>') == 'jsx'

    def test_html_or_text_with_template_and_script_becomes_vue(self):
        assert resolve_code_language({'style': {'language': 24}}, content=VUE_COMPONENT) == 'vue'
        assert refine_language('text', VUE_COMPONENT) == 'vue'
        assert refine_language('html', '<template><p>only markup</p></template>') == 'html'

    def test_empty_content_is_not_refined(self):
        assert resolve_code_language({'style': {'language': 'js'}}, content='') == 'javascript'
        assert refine_language('html', '') == 'html'

    def test_other_languages_untouched(self):
        assert refine_language('python', 'x = <Foo />') == 'python'
