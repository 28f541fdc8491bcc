"""Tests for the command-line entry point."""

from unittest import mock

import feishu_export
from models import DiscoverResult, ExportMarkdownResult


def export_result(total=1, written=1, skipped=0, warnings=None):
    return ExportMarkdownResult(generated_at='2026-01-01T00:00:00.000Z', source_manifest_path='out/manifest.json',
                                output_dir_path='out', total=total, written=written, skipped=skipped,
                                warnings=warnings or [])


def report(export):
    discovery = DiscoverResult(generated_at='2026-01-01T00:00:00.000Z', root_url='https://a.feishu.cn/docx/d1',
                               total=1)
    return {'discovery': discovery, 'export': export, 'manifest_path': 'out/manifest.json', 'duration': 0.1}


class TestArgumentParser:
    def test_flags(self):
        args = feishu_export.create_argument_parser().parse_args([
            '--url', 'https://a.feishu.cn/docx/d1', '--max-depth', '2', '--page-size', '50',
            '--skip-discover', '-vv',
        ])

        assert args.url == 'https://a.feishu.cn/docx/d1'
        assert args.max_depth == 2
        assert args.page_size == 50
        assert args.skip_discover is True
        assert args.verbose == 2
        assert args.manifest is None


class TestMain:
    def test_configuration_error_exit_code(self, monkeypatch, capsys):
        monkeypatch.delenv('FEISHU_APP_ID', raising=False)
        monkeypatch.delenv('FEISHU_APP_SECRET', raising=False)

        assert feishu_export.main(['--url', 'https://a.feishu.cn/docx/d1']) == 2
        assert 'Missing required option: --app-id' in capsys.readouterr().err

    def test_successful_run(self, monkeypatch, capsys):
        monkeypatch.setenv('FEISHU_APP_ID', 'app')
        monkeypatch.setenv('FEISHU_APP_SECRET', 'secret')

        with mock.patch.object(feishu_export, 'ExportOrchestrator') as orchestrator_class:
            orchestrator_class.return_value.run.return_value = report(export_result())
            exit_code = feishu_export.main(['--url', 'https://a.feishu.cn/docx/d1', '--output', 'out'])

        assert exit_code == 0
        config = orchestrator_class.call_args[0][0]
        assert config['export']['output_directory'] == 'out'
        output = capsys.readouterr().out
        assert 'Exported: 1 written, 0 skipped of 1' in output

    def test_nothing_written_is_a_failure(self, monkeypatch):
        monkeypatch.setenv('FEISHU_APP_ID', 'app')
        monkeypatch.setenv('FEISHU_APP_SECRET', 'secret')

        with mock.patch.object(feishu_export, 'ExportOrchestrator') as orchestrator_class:
            orchestrator_class.return_value.run.return_value = report(
                export_result(total=2, written=0, skipped=2, warnings=['Skip docx:d1: no docx source']))
            assert feishu_export.main(['--url', 'https://a.feishu.cn/docx/d1']) == 1

    def test_interrupt_exit_code(self, monkeypatch):
        monkeypatch.setenv('FEISHU_APP_ID', 'app')
        monkeypatch.setenv('FEISHU_APP_SECRET', 'secret')

        with mock.patch.object(feishu_export, 'ExportOrchestrator') as orchestrator_class:
            orchestrator_class.return_value.run.side_effect = KeyboardInterrupt
            assert feishu_export.main(['--url', 'https://a.feishu.cn/docx/d1']) == 130
