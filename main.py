# main.py
from generators.curl_generator import build_curl_command
from generators.postman_generator import generate_postman_collection
from loaders.dataset_loader import parse_catalog_csv
from mapper.operation_suggester import suggest_operation
from mapper.request_mapper import prepare_request_mapping
from mapper.schema_mapper import map_xml_to_json
from utils.settings import ToolboxSettings, load_settings
from utils.spec_loader import build_timestamp_token, find_operation, list_operations, load_spec_text, sanitize_filename
from utils.validators import SpecValidator
from utils.logging_config import setup_logging
from utils.decorators import log_execution_time, validate_inputs
import argparse
import json
import os
import sys
import logging

logger = logging.getLogger(__name__)


class RequestBuilderPipeline:
    def __init__(self, spec_text, settings=None):
        self.settings = settings or ToolboxSettings()
        self.spec, self.spec_format = load_spec_text(spec_text)
        self.issues = SpecValidator.validate_openapi(self.spec)

    @log_execution_time
    @validate_inputs(operation_key=str, xml_text=str)
    def run(self, operation_key, xml_text, prune_body=False):
        """
        Prepare a request for one operation from an XML sample

        Args:
            operation_key: operationId or 'METHOD /path'
            xml_text: SOAP/XML sample (log records with a <message> envelope accepted)
            prune_body: Send only the fields that received a value

        Returns:
            Tuple of (RequestMapping, cURL text)
        """
        operation = find_operation(self.spec, operation_key)
        if operation is None:
            raise ValueError(f"Operation '{operation_key}' not found in the OpenAPI document")

        logger.info(f"🔧 Preparing {operation.method} {operation.path}...")
        mapping = prepare_request_mapping(self.spec, operation, xml_text, self.settings)
        for diagnostic in mapping.diagnostics:
            logger.warning(f"[{diagnostic.severity}] {diagnostic.path or '<root>'}: {diagnostic.message}")

        curl = build_curl_command(operation, mapping, prune_body=prune_body,
                                  host_variable=self.settings.host_variable)
        logger.info("✅ Request prepared")
        return mapping, curl

    @validate_inputs(xml_text=str, schema=dict)
    def map_payload(self, xml_text, schema, prune=False):
        """Map an XML sample onto a schema of this document"""
        return map_xml_to_json(xml_text, schema, self.spec, prune=prune,
                               max_depth=self.settings.mapping_max_depth)

    def suggest(self, xml_text, catalog_df):
        """Guess the operation of this document an XML log belongs to, using the API catalog"""
        return suggest_operation(xml_text, list_operations(self.spec), catalog_df,
                                 min_confidence=self.settings.suggestion_min_confidence)

    @log_execution_time
    def export_postman(self, output_dir='output'):
        """Write the Postman collection and return its path"""
        collection = generate_postman_collection(self.spec, self.settings)
        os.makedirs(output_dir, exist_ok=True)

        title = collection['info']['name']
        output_file = os.path.join(
            output_dir, f"{sanitize_filename(title)}_{build_timestamp_token()}.postman_collection.json"
        )
        with open(output_file, 'w', encoding='utf-8') as f:
            json.dump(collection, f, indent=2, ensure_ascii=False)

        logger.info(f"📁 Saved {len(collection['item'])} requests to {output_file}")
        return output_file


def _read(path):
    with open(path, 'r', encoding='utf-8') as f:
        return f.read()


def main(argv=None):
    parser = argparse.ArgumentParser(description="OpenAPI / SOAP-XML request toolbox")
    parser.add_argument('spec', help="OpenAPI document (JSON or YAML)")
    subparsers = parser.add_subparsers(dest='command', required=True)

    postman = subparsers.add_parser('postman', help="Export a Postman v2.1 collection")
    postman.add_argument('--output-dir', default='output')

    curl = subparsers.add_parser('curl', help="Build a cURL command from an XML sample")
    curl.add_argument('operation', help="operationId or 'METHOD /path'")
    curl.add_argument('xml', help="XML sample file")
    curl.add_argument('--prune', action='store_true', help="Send only fields that received a value")

    subparsers.add_parser('operations', help="List operations")

    suggest = subparsers.add_parser('suggest', help="Guess the operation of an XML log from the API catalog")
    suggest.add_argument('xml', help="XML log file")
    suggest.add_argument('--catalog', required=True, help="API catalog CSV (';' separated)")

    args = parser.parse_args(argv)

    settings = load_settings()
    setup_logging(log_level=settings.log_level, log_file=settings.log_file)

    pipeline = RequestBuilderPipeline(_read(args.spec), settings)
    for issue in pipeline.issues:
        logger.warning(f"{issue['issue_type']}: {issue['message']}")

    if args.command == 'postman':
        print(pipeline.export_postman(args.output_dir))
    elif args.command == 'curl':
        _, curl_text = pipeline.run(args.operation, _read(args.xml), prune_body=args.prune)
        print(curl_text)
    elif args.command == 'suggest':
        suggestion = pipeline.suggest(_read(args.xml), parse_catalog_csv(_read(args.catalog)))
        if suggestion is None or suggestion.best is None:
            print("No matching operation")
            return 1
        print(f"{suggestion.status} {suggestion.confidence}%  "
              f"{suggestion.best.operation.method} {suggestion.best.operation.path}")
        for reason in suggestion.reasons:
            print(f"  - {reason}")
        for candidate in suggestion.alternatives:
            print(f"  alt {candidate.confidence}%  {candidate.operation.method} {candidate.operation.path}")
    else:
        for operation in list_operations(pipeline.spec):
            print(f"{operation.method:7} {operation.path}  ({operation.operation_id})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
