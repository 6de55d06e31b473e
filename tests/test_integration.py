"""
Integration tests for full generate-decode cycle through the CLI
"""

import os
import sys
import json
import shutil
import tempfile
import filecmp

import pytest
from click.testing import CliRunner

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import papercrypt as pc

SECRET = b'{"root_token": "s.8f2a", "unseal_keys": ["a1", "b2", "c3"]}\n'


def write_file(path, data):
    with open(path, 'wb') as f:
        f.write(data)


def read_file(path):
    with open(path, 'rb') as f:
        return f.read()


def generate(runner, tmpdir, *args, passphrase="correct horse", name='document.txt'):
    input_file = os.path.join(tmpdir, 'secret.json')
    output_file = os.path.join(tmpdir, name)
    if not os.path.exists(input_file):
        write_file(input_file, SECRET)

    result = runner.invoke(pc.cli, ['generate', '-i', input_file, '-o', output_file,
                                    '--passphrase', passphrase] + list(args))
    return result, output_file


class TestFullCycle:
    """Test complete generate-decode workflow"""

    def test_generate_decode_text(self):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as tmpdir:
            result, document = generate(runner, tmpdir, '-s', 'ABC123', '-p', 'Vault keys')
            assert result.exit_code == 0, result.output

            text = read_file(document).decode('utf-8')
            assert text.startswith(pc.DOCUMENT_BEGIN)
            assert "SerialNumber: ABC123" in text
            assert "Purpose: Vault keys" in text

            recovered = os.path.join(tmpdir, 'recovered.json')
            result = runner.invoke(pc.cli, ['decode', document, '-o', recovered,
                                            '--passphrase', 'correct horse'])
            assert result.exit_code == 0, result.output
            assert read_file(recovered) == SECRET

    @pytest.mark.parametrize("options", [['--armor'], ['--lowercase'], ['--ascii-qr']])
    def test_generate_decode_variants(self, options):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as tmpdir:
            result, document = generate(runner, tmpdir, *options)
            assert result.exit_code == 0, result.output

            recovered = os.path.join(tmpdir, 'recovered.json')
            result = runner.invoke(pc.cli, ['decode', document, '-o', recovered, '-P', 'correct horse'])
            assert result.exit_code == 0, result.output
            assert read_file(recovered) == SECRET

    def test_passphrase_prompts(self):
        """Test the passphrase is prompted for (with confirmation) when omitted"""
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as tmpdir:
            input_file = os.path.join(tmpdir, 'secret.json')
            document = os.path.join(tmpdir, 'document.txt')
            recovered = os.path.join(tmpdir, 'recovered.json')
            write_file(input_file, SECRET)

            result = runner.invoke(pc.cli, ['generate', '-i', input_file, '-o', document],
                                   input="pw\npw\n")
            assert result.exit_code == 0, result.output

            result = runner.invoke(pc.cli, ['decode', document, '-o', recovered], input="pw\n")
            assert result.exit_code == 0, result.output
            assert read_file(recovered) == SECRET

    def test_date_override(self):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as tmpdir:
            result, document = generate(runner, tmpdir, '-d', '2024-03-01')
            assert result.exit_code == 0, result.output

            doc = pc.text_to_document(read_file(document))
            assert pc.format_timestamp(doc.timestamp) == "2024-03-01T00:00:00.000000+00:00"

    def test_random_serial(self):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as tmpdir:
            result, document = generate(runner, tmpdir)
            assert result.exit_code == 0, result.output

            doc = pc.text_to_document(read_file(document))
            assert len(doc.serial_number) == pc.SERIAL_LENGTH
            assert pc.is_valid_serial(doc.serial_number)
            assert f"Serial number: {doc.serial_number}" in result.output

    def test_generate_pdf(self):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as tmpdir:
            result, document = generate(runner, tmpdir, '--pdf', name='document.pdf')
            assert result.exit_code == 0, result.output
            assert read_file(document).startswith(b'%PDF')

    def test_generate_pdf_no_qr_letter(self):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as tmpdir:
            result, document = generate(runner, tmpdir, '--pdf', '--no-qr', '--armor',
                                        '--page-size', 'LETTER', name='document.pdf')
            assert result.exit_code == 0, result.output
            assert read_file(document).startswith(b'%PDF')


class TestGenerateErrors:
    """Test generate rejects bad input before writing anything"""

    def test_existing_output_requires_force(self):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as tmpdir:
            write_file(os.path.join(tmpdir, 'document.txt'), b"keep me")

            result, document = generate(runner, tmpdir)
            assert result.exit_code == 1
            assert "already exists" in result.output
            assert read_file(document) == b"keep me"

            result, document = generate(runner, tmpdir, '--force')
            assert result.exit_code == 0, result.output
            assert read_file(document).startswith(pc.DOCUMENT_BEGIN.encode('ascii'))

    @pytest.mark.parametrize("serial", ["ABC-123", "abc123", "OIL0"])
    def test_invalid_serial(self, serial):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as tmpdir:
            result, document = generate(runner, tmpdir, '-s', serial)
            assert result.exit_code == 1
            assert "Serial number" in result.output
            assert not os.path.exists(document)

    def test_invalid_date(self):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as tmpdir:
            result, document = generate(runner, tmpdir, '-d', 'next tuesday')
            assert result.exit_code == 1
            assert "Could not parse date" in result.output

    def test_missing_input(self):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as tmpdir:
            result = runner.invoke(pc.cli, ['generate', '-i', os.path.join(tmpdir, 'missing'),
                                            '-o', os.path.join(tmpdir, 'out.txt'), '--passphrase', 'pw'])
            assert result.exit_code == 1


class TestDecodeErrors:
    """Test decode reports which check failed"""

    def test_wrong_passphrase(self):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as tmpdir:
            result, document = generate(runner, tmpdir)
            assert result.exit_code == 0, result.output

            recovered = os.path.join(tmpdir, 'recovered.json')
            result = runner.invoke(pc.cli, ['decode', document, '-o', recovered, '-P', 'wrong'])
            assert result.exit_code == 1
            assert "Incorrect passphrase" in result.output
            assert not os.path.exists(recovered)

    def test_tampered_document(self):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as tmpdir:
            result, document = generate(runner, tmpdir)
            assert result.exit_code == 0, result.output

            lines = read_file(document).decode('utf-8').splitlines()
            body_index = lines.index('') + 1
            # Flip the last hex digit of the first body line
            last = lines[body_index][-1]
            lines[body_index] = lines[body_index][:-1] + ('0' if last != '0' else '1')
            write_file(document, ('\n'.join(lines) + '\n').encode('utf-8'))

            recovered = os.path.join(tmpdir, 'recovered.json')
            result = runner.invoke(pc.cli, ['decode', document, '-o', recovered, '-P', 'correct horse'])
            assert result.exit_code == 1
            assert "CRC-32 checksum mismatch" in result.output

    def test_verify_reports_failure(self):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as tmpdir:
            result, document = generate(runner, tmpdir, '-s', 'ABC123')
            assert result.exit_code == 0, result.output

            text = read_file(document).decode('utf-8').replace("SerialNumber: ABC123", "SerialNumber: ABC124")
            write_file(document, text.encode('utf-8'))

            result = runner.invoke(pc.cli, ['verify', document])
            assert result.exit_code == 1
            assert "Header checksum mismatch" in result.output


class TestVerify:
    """Test verify without decrypting"""

    def test_verify_text(self):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as tmpdir:
            result, document = generate(runner, tmpdir, '-s', 'ABC123', '-c', 'copy 1')
            assert result.exit_code == 0, result.output

            result = runner.invoke(pc.cli, ['verify', document])
            assert result.exit_code == 0, result.output
            assert "ABC123" in result.output
            assert "copy 1" in result.output
            assert result.output.count("PASS") == 3

    def test_verify_json(self):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as tmpdir:
            result, document = generate(runner, tmpdir)
            assert result.exit_code == 0, result.output

            payload_file = os.path.join(tmpdir, 'payload.json')
            write_file(payload_file, pc.document_to_payload(pc.text_to_document(read_file(document))).encode('utf-8'))

            result = runner.invoke(pc.cli, ['verify', payload_file])
            assert result.exit_code == 0, result.output
            assert "PASS" in result.output

    def test_version(self):
        result = CliRunner().invoke(pc.cli, ['--version'])
        assert result.exit_code == 0
        assert pc.VERSION in result.output


class TestQrCommand:
    """Test recovering documents from QR payloads"""

    def test_from_json(self):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as tmpdir:
            result, document = generate(runner, tmpdir)
            assert result.exit_code == 0, result.output
            doc = pc.text_to_document(read_file(document))

            payload_file = os.path.join(tmpdir, 'payload.json')
            write_file(payload_file, pc.document_to_payload(doc).encode('utf-8'))

            recovered_text = os.path.join(tmpdir, 'recovered.txt')
            result = runner.invoke(pc.cli, ['qr', payload_file, '--from-json', '-o', recovered_text])
            assert result.exit_code == 0, result.output
            assert read_file(recovered_text) == read_file(document)

    def test_from_legacy_json(self):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as tmpdir:
            payload_file = os.path.join(tmpdir, 'payload.json')
            write_file(payload_file, json.dumps({
                "SerialNumber": "ABC123",
                "CreatedAt": "2024-01-01T00:00:00Z",
                "Data": {"Data": "AQID"},
            }).encode('utf-8'))

            recovered_text = os.path.join(tmpdir, 'recovered.txt')
            result = runner.invoke(pc.cli, ['qr', payload_file, '-j', '-o', recovered_text])
            assert result.exit_code == 0, result.output

            doc = pc.text_to_document(read_file(recovered_text))
            assert doc.ciphertext == bytes([1, 2, 3])
            assert doc.generator_version == pc.LEGACY_GENERATOR_VERSION

    def test_to_json_passthrough(self):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as tmpdir:
            payload = '{"Version":"2.1.0","Data":"AQID"}'
            payload_file = os.path.join(tmpdir, 'payload.json')
            write_file(payload_file, payload.encode('utf-8'))

            out_file = os.path.join(tmpdir, 'out.json')
            result = runner.invoke(pc.cli, ['qr', payload_file, '-j', '-J', '-o', out_file])
            assert result.exit_code == 0, result.output
            assert read_file(out_file) == payload.encode('utf-8')

    def test_unrecognized_json(self):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as tmpdir:
            payload_file = os.path.join(tmpdir, 'payload.json')
            write_file(payload_file, b'{}')

            result = runner.invoke(pc.cli, ['qr', payload_file, '-j', '-o', os.path.join(tmpdir, 'out.txt')])
            assert result.exit_code == 1
            assert "Unrecognized document format" in result.output

    def test_qr_image_round_trip(self):
        """Test a document survives rendering to and reading from a QR image"""
        pytest.importorskip("cv2")
        pytest.importorskip("pyzbar.pyzbar")

        doc = pc.Document.create(pc.encrypt(SECRET, "pw", time_cost=1, memory_cost=8192, parallelism=1),
                                 purpose="QR test")
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as tmpdir:
            image_file = os.path.join(tmpdir, 'qr.png')
            pc.create_qr_image(pc.document_to_payload(doc)).save(image_file)

            recovered_text = os.path.join(tmpdir, 'recovered.txt')
            result = runner.invoke(pc.cli, ['qr', image_file, '-o', recovered_text])
            assert result.exit_code == 0, result.output

            recovered = os.path.join(tmpdir, 'recovered.json')
            result = runner.invoke(pc.cli, ['decode', recovered_text, '-o', recovered, '-P', 'pw'])
            assert result.exit_code == 0, result.output
            assert read_file(recovered) == SECRET

    @pytest.mark.skipif(shutil.which('pdftoppm') is None, reason="poppler is not installed")
    def test_pdf_qr_round_trip(self):
        """Test the QR code printed in a generated PDF decodes to the same document"""
        pytest.importorskip("cv2")
        pytest.importorskip("pyzbar.pyzbar")

        runner = CliRunner()
        with tempfile.TemporaryDirectory() as tmpdir:
            result, pdf_file = generate(runner, tmpdir, '--pdf', passphrase='pw', name='document.pdf')
            assert result.exit_code == 0, result.output

            recovered_text = os.path.join(tmpdir, 'recovered.txt')
            result = runner.invoke(pc.cli, ['qr', pdf_file, '-o', recovered_text])
            assert result.exit_code == 0, result.output

            recovered = os.path.join(tmpdir, 'recovered.json')
            result = runner.invoke(pc.cli, ['decode', recovered_text, '-o', recovered, '-P', 'pw'])
            assert result.exit_code == 0, result.output

            input_file = os.path.join(tmpdir, 'secret.json')
            assert filecmp.cmp(input_file, recovered)
